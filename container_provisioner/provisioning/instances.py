"""Launching a single tagged EC2 instance and finding it again by tag and id."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import AmbiguousInstance, InstanceNotFound, LaunchFailed, PayloadTooLarge
from .ledger import ResourceLedger
from .models import ELIGIBLE_STATES, InstanceRecord, InstanceSpec, Tag
from .session import to_provider_error

logger = logging.getLogger(__name__)

# EC2 limit on raw user data, before base64 encoding
MAX_USER_DATA_BYTES = 16384


class InstanceProvisioner:
    """Launches exactly one instance per call, tagged at creation time."""

    def __init__(self, ec2: Any, ledger: ResourceLedger | None = None):
        self._ec2 = ec2
        self._ledger = ledger

    def launch(self, spec: InstanceSpec) -> InstanceRecord:
        user_data = spec.user_data.encode("utf-8")
        if len(user_data) > MAX_USER_DATA_BYTES:
            raise PayloadTooLarge(len(user_data), MAX_USER_DATA_BYTES)

        request: dict[str, Any] = {
            "ImageId": spec.image_id,
            "InstanceType": spec.instance_type,
            "MinCount": 1,
            "MaxCount": 1,
            "SecurityGroupIds": list(spec.security_group_ids),
            "TagSpecifications": [
                {"ResourceType": "instance", "Tags": [spec.tag.to_api()]},
            ],
        }
        # botocore base64-encodes UserData for RunInstances
        if spec.user_data:
            request["UserData"] = spec.user_data

        try:
            response = self._ec2.run_instances(**request)
        except (ClientError, BotoCoreError) as exc:
            raise to_provider_error(exc, "Could not create instance", LaunchFailed) from exc

        instance = InstanceRecord.from_api(response["Instances"][0])
        if self._ledger is not None:
            self._ledger.record_instance(instance.instance_id)
        logger.info("Created instance <%s>", instance.instance_id,
                    extra={"instance_id": instance.instance_id, "state": instance.state})
        return instance


class InstanceResolver:
    """Looks up pending/running instances by tag and picks one by id."""

    def __init__(self, ec2: Any):
        self._ec2 = ec2

    def find_by_tag(self, key: str, value: str) -> list[InstanceRecord]:
        """Return pending and running instances carrying tag ``key=value``."""
        records: list[InstanceRecord] = []
        try:
            paginator = self._ec2.get_paginator("describe_instances")
            pages = paginator.paginate(
                Filters=[
                    Tag(key, value).to_filter(),
                    {"Name": "instance-state-name", "Values": list(ELIGIBLE_STATES)},
                ]
            )
            for page in pages:
                for reservation in page.get("Reservations", []):
                    for raw in reservation.get("Instances", []):
                        record = InstanceRecord.from_api(raw)
                        if record.is_eligible:
                            records.append(record)
        except (ClientError, BotoCoreError) as exc:
            raise to_provider_error(exc, f"Unable to list instances tagged {key}={value}") from exc

        logger.debug("Found %d instances tagged %s=%s", len(records), key, value)
        return records

    @staticmethod
    def resolve(records: list[InstanceRecord], instance_id: str) -> InstanceRecord:
        """Return the single record whose id is ``instance_id``."""
        matches = [r for r in records if r.instance_id == instance_id]
        if not matches:
            raise InstanceNotFound(instance_id)
        if len(matches) > 1:
            raise AmbiguousInstance(instance_id, len(matches))
        return matches[0]

    def locate(self, tag: Tag, instance_id: str) -> InstanceRecord:
        return self.resolve(self.find_by_tag(tag.key, tag.value), instance_id)
