"""Record of resources created during a run, with a compensating teardown."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import TeardownError
from .session import error_message

logger = logging.getLogger(__name__)


class ResourceLedger:
    """Tracks security groups and instances created (not reused) by this run."""

    def __init__(self) -> None:
        self.security_group_ids: list[str] = []
        self.instance_ids: list[str] = []

    def record_security_group(self, group_id: str) -> None:
        if group_id not in self.security_group_ids:
            self.security_group_ids.append(group_id)

    def record_instance(self, instance_id: str) -> None:
        if instance_id not in self.instance_ids:
            self.instance_ids.append(instance_id)

    def is_empty(self) -> bool:
        return not self.security_group_ids and not self.instance_ids

    def teardown(self, ec2: Any, wait: bool = True) -> None:
        """Remove every recorded resource, instances first.

        A group cannot be deleted while an instance still references it, so
        instance termination is awaited before groups are deleted. Every
        resource is attempted; failures are collected into one TeardownError.
        """
        failures: list[str] = []

        if self.instance_ids:
            instance_ids = list(self.instance_ids)
            logger.info("Terminating instances: %s", ", ".join(instance_ids))
            try:
                ec2.terminate_instances(InstanceIds=instance_ids)
                if wait:
                    ec2.get_waiter("instance_terminated").wait(InstanceIds=instance_ids)
                self.instance_ids.clear()
            except (ClientError, BotoCoreError) as exc:
                logger.error("Could not terminate instances %s: %s", instance_ids, exc)
                failures.append(f"instances {', '.join(instance_ids)}: {error_message(exc)}")

        for group_id in list(self.security_group_ids):
            try:
                ec2.delete_security_group(GroupId=group_id)
            except (ClientError, BotoCoreError) as exc:
                logger.error("Could not delete security group %s: %s", group_id, exc,
                             extra={"group_id": group_id})
                failures.append(f"security group {group_id}: {error_message(exc)}")
                continue
            self.security_group_ids.remove(group_id)
            logger.info("Deleted security group %s", group_id, extra={"group_id": group_id})

        if failures:
            raise TeardownError(failures)
