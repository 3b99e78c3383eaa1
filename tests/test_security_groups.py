"""Tests for the security group get-or-create logic."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from container_provisioner.exceptions import (
    IngressRuleFailed,
    InvalidSpec,
    NetworkNotFound,
    NoNetworkAvailable,
    ProviderError,
)
from container_provisioner.provisioning.ledger import ResourceLedger
from container_provisioner.provisioning.models import IngressRule, SecurityGroupSpec
from container_provisioner.provisioning.security_groups import SecurityGroupProvisioner

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

RULE = IngressRule(port=80, cidr="1.2.3.4/32")


def _spec(name="sg1", description="test", vpc_id=None, rule=RULE) -> SecurityGroupSpec:
    return SecurityGroupSpec(name=name, description=description, rule=rule, vpc_id=vpc_id)


def _client_error(code: str, operation: str = "CreateSecurityGroup") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


def _group(group_id="sg-111", permissions=None) -> dict:
    return {
        "GroupId": group_id,
        "GroupName": "sg1",
        "IpPermissions": permissions if permissions is not None else [RULE.to_ip_permission()],
    }


def _ec2(vpcs=("vpc-1",), groups=None) -> MagicMock:
    ec2 = MagicMock()
    ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": v} for v in vpcs]}
    ec2.create_security_group.return_value = {"GroupId": "sg-111"}
    ec2.describe_security_groups.return_value = {
        "SecurityGroups": groups if groups is not None else [_group()],
    }
    return ec2


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("name,description", [("", "desc"), ("sg", ""), ("", "")])
    def test_name_and_description_required(self, name, description):
        ec2 = _ec2()
        with pytest.raises(InvalidSpec):
            SecurityGroupProvisioner(ec2).ensure_group(_spec(name=name, description=description))
        ec2.describe_vpcs.assert_not_called()
        ec2.create_security_group.assert_not_called()


class TestVpcSelection:
    def test_first_vpc_used_when_not_given(self):
        ec2 = _ec2(vpcs=("vpc-first", "vpc-second"))
        SecurityGroupProvisioner(ec2).ensure_group(_spec())
        ec2.create_security_group.assert_called_once_with(
            GroupName="sg1", Description="test", VpcId="vpc-first",
        )

    def test_explicit_vpc_skips_lookup(self):
        ec2 = _ec2()
        SecurityGroupProvisioner(ec2).ensure_group(_spec(vpc_id="vpc-explicit"))
        ec2.describe_vpcs.assert_not_called()
        assert ec2.create_security_group.call_args.kwargs["VpcId"] == "vpc-explicit"

    def test_no_vpcs_raises(self):
        ec2 = _ec2(vpcs=())
        with pytest.raises(NoNetworkAvailable):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())
        ec2.create_security_group.assert_not_called()

    def test_describe_vpcs_failure_is_provider_error(self):
        ec2 = _ec2()
        ec2.describe_vpcs.side_effect = _client_error("UnauthorizedOperation", "DescribeVpcs")
        with pytest.raises(ProviderError, match="UnauthorizedOperation"):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())

    def test_unknown_vpc_raises_network_not_found(self):
        ec2 = _ec2()
        ec2.create_security_group.side_effect = _client_error("InvalidVpcID.NotFound")
        with pytest.raises(NetworkNotFound, match="vpc-missing") as excinfo:
            SecurityGroupProvisioner(ec2).ensure_group(_spec(vpc_id="vpc-missing"))
        assert excinfo.value.code == "InvalidVpcID.NotFound"


class TestCreate:
    def test_creates_group_and_authorizes_ingress(self):
        ec2 = _ec2()
        ids = SecurityGroupProvisioner(ec2).ensure_group(_spec())

        assert ids == ["sg-111"]
        ec2.authorize_security_group_ingress.assert_called_once_with(
            GroupId="sg-111",
            IpPermissions=[{
                "IpProtocol": "tcp",
                "FromPort": 80,
                "ToPort": 80,
                "IpRanges": [{"CidrIp": "1.2.3.4/32"}],
            }],
        )

    def test_result_comes_from_name_filtered_lookup(self):
        ec2 = _ec2()
        SecurityGroupProvisioner(ec2).ensure_group(_spec())
        ec2.describe_security_groups.assert_called_once_with(
            Filters=[
                {"Name": "group-name", "Values": ["sg1"]},
                {"Name": "vpc-id", "Values": ["vpc-1"]},
            ]
        )

    def test_created_group_recorded_in_ledger(self):
        ledger = ResourceLedger()
        SecurityGroupProvisioner(_ec2(), ledger).ensure_group(_spec())
        assert ledger.security_group_ids == ["sg-111"]

    def test_ingress_failure_raises_and_keeps_group(self):
        ec2 = _ec2()
        ec2.authorize_security_group_ingress.side_effect = _client_error(
            "InvalidPermission.Malformed", "AuthorizeSecurityGroupIngress",
        )
        ledger = ResourceLedger()
        with pytest.raises(IngressRuleFailed, match="ingress"):
            SecurityGroupProvisioner(ec2, ledger).ensure_group(_spec())
        ec2.delete_security_group.assert_not_called()
        assert ledger.security_group_ids == ["sg-111"]

    def test_other_create_error_is_provider_error(self):
        ec2 = _ec2()
        ec2.create_security_group.side_effect = _client_error("RequestLimitExceeded")
        with pytest.raises(ProviderError, match="RequestLimitExceeded") as excinfo:
            SecurityGroupProvisioner(ec2).ensure_group(_spec())
        assert not isinstance(excinfo.value, (NetworkNotFound, IngressRuleFailed))

    def test_transport_error_is_provider_error(self):
        ec2 = _ec2()
        ec2.create_security_group.side_effect = EndpointConnectionError(endpoint_url="https://ec2")
        with pytest.raises(ProviderError):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())

    def test_lookup_returning_nothing_is_provider_error(self):
        ec2 = _ec2(groups=[])
        with pytest.raises(ProviderError, match="not found"):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())


class TestReuse:
    def test_duplicate_reuses_existing_group(self, caplog):
        ec2 = _ec2(groups=[_group("sg-existing")])
        ec2.create_security_group.side_effect = _client_error("InvalidGroup.Duplicate")

        with caplog.at_level(logging.WARNING):
            ids = SecurityGroupProvisioner(ec2).ensure_group(_spec())

        assert ids == ["sg-existing"]
        ec2.authorize_security_group_ingress.assert_not_called()
        assert "already exists" in caplog.text

    def test_reused_group_not_recorded_in_ledger(self):
        ec2 = _ec2(groups=[_group("sg-existing")])
        ec2.create_security_group.side_effect = _client_error("InvalidGroup.Duplicate")
        ledger = ResourceLedger()
        SecurityGroupProvisioner(ec2, ledger).ensure_group(_spec())
        assert ledger.is_empty()

    def test_drifted_rule_is_reported(self, caplog):
        stale = [{"IpProtocol": "tcp", "FromPort": 80, "ToPort": 80, "IpRanges": [{"CidrIp": "8.8.8.8/32"}]}]
        ec2 = _ec2(groups=[_group("sg-existing", permissions=stale)])
        ec2.create_security_group.side_effect = _client_error("InvalidGroup.Duplicate")

        with caplog.at_level(logging.WARNING):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())

        assert "does not allow tcp/80 from 1.2.3.4/32" in caplog.text
        ec2.authorize_security_group_ingress.assert_not_called()

    def test_matching_rule_not_reported_as_drift(self, caplog):
        ec2 = _ec2(groups=[_group("sg-existing")])
        ec2.create_security_group.side_effect = _client_error("InvalidGroup.Duplicate")
        with caplog.at_level(logging.WARNING):
            SecurityGroupProvisioner(ec2).ensure_group(_spec())
        assert "does not allow" not in caplog.text

    def test_second_call_is_idempotent(self):
        ec2 = _ec2()
        ec2.create_security_group.side_effect = [
            {"GroupId": "sg-111"},
            _client_error("InvalidGroup.Duplicate"),
        ]
        provisioner = SecurityGroupProvisioner(ec2)

        first = provisioner.ensure_group(_spec())
        second = provisioner.ensure_group(_spec())

        assert first == second == ["sg-111"]
        ec2.authorize_security_group_ingress.assert_called_once()
