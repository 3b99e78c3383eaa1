"""Tests for the resource ledger and compensating teardown."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from container_provisioner.exceptions import TeardownError
from container_provisioner.provisioning.ledger import ResourceLedger


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


def _ledger(groups=(), instances=()) -> ResourceLedger:
    ledger = ResourceLedger()
    for group_id in groups:
        ledger.record_security_group(group_id)
    for instance_id in instances:
        ledger.record_instance(instance_id)
    return ledger


class TestRecording:
    def test_starts_empty(self):
        assert ResourceLedger().is_empty()

    def test_duplicates_recorded_once(self):
        ledger = _ledger(groups=["sg-1", "sg-1"], instances=["i-1", "i-1"])
        assert ledger.security_group_ids == ["sg-1"]
        assert ledger.instance_ids == ["i-1"]


class TestTeardown:
    def test_instances_terminated_before_groups_deleted(self):
        ec2 = MagicMock()
        ledger = _ledger(groups=["sg-1"], instances=["i-1"])

        ledger.teardown(ec2)

        names = [c[0] for c in ec2.method_calls]
        assert names.index("terminate_instances") < names.index("delete_security_group")
        ec2.terminate_instances.assert_called_once_with(InstanceIds=["i-1"])
        ec2.get_waiter.return_value.wait.assert_called_once_with(InstanceIds=["i-1"])
        ec2.delete_security_group.assert_called_once_with(GroupId="sg-1")
        assert ledger.is_empty()

    def test_no_wait(self):
        ec2 = MagicMock()
        _ledger(instances=["i-1"]).teardown(ec2, wait=False)
        ec2.get_waiter.assert_not_called()

    def test_groups_only(self):
        ec2 = MagicMock()
        _ledger(groups=["sg-1", "sg-2"]).teardown(ec2)
        ec2.terminate_instances.assert_not_called()
        assert ec2.delete_security_group.call_count == 2

    def test_failures_collected(self):
        ec2 = MagicMock()
        ec2.delete_security_group.side_effect = [
            _client_error("DependencyViolation", "DeleteSecurityGroup"),
            None,
        ]
        ledger = _ledger(groups=["sg-1", "sg-2"])

        with pytest.raises(TeardownError, match="sg-1") as excinfo:
            ledger.teardown(ec2)

        assert len(excinfo.value.failures) == 1
        assert ec2.delete_security_group.call_count == 2
        assert ledger.security_group_ids == ["sg-1"]

    def test_terminate_failure_still_attempts_groups(self):
        ec2 = MagicMock()
        ec2.terminate_instances.side_effect = _client_error("UnauthorizedOperation", "TerminateInstances")
        ledger = _ledger(groups=["sg-1"], instances=["i-1"])

        with pytest.raises(TeardownError, match="i-1"):
            ledger.teardown(ec2)

        ec2.delete_security_group.assert_called_once_with(GroupId="sg-1")
        assert ledger.instance_ids == ["i-1"]
