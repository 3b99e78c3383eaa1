"""Get-or-create for the security group guarding the container port."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import (
    IngressRuleFailed,
    InvalidSpec,
    NetworkNotFound,
    NoNetworkAvailable,
    ProviderError,
)
from .ledger import ResourceLedger
from .models import SecurityGroupSpec
from .session import error_code, to_provider_error

logger = logging.getLogger(__name__)

DUPLICATE_GROUP = "InvalidGroup.Duplicate"
VPC_NOT_FOUND = "InvalidVpcID.NotFound"


class SecurityGroupProvisioner:
    """Ensures a named security group with one ingress rule exists in a VPC.

    An existing group with the same name is reused as-is. Its rules are
    never modified, so a rule that differs from the requested one is only
    reported, not fixed.
    """

    def __init__(self, ec2: Any, ledger: ResourceLedger | None = None):
        self._ec2 = ec2
        self._ledger = ledger

    def ensure_group(self, spec: SecurityGroupSpec) -> list[str]:
        """Create or reuse the group; return the ids of groups matching its name."""
        if not spec.name or not spec.description:
            raise InvalidSpec("Security group name and description are required")

        vpc_id = spec.vpc_id or self._first_vpc_id()

        try:
            response = self._ec2.create_security_group(
                GroupName=spec.name,
                Description=spec.description,
                VpcId=vpc_id,
            )
        except ClientError as exc:
            code = error_code(exc)
            if code == VPC_NOT_FOUND:
                raise NetworkNotFound(f"Unable to find VPC with ID {vpc_id!r}", code=code) from exc
            if code != DUPLICATE_GROUP:
                raise to_provider_error(exc, f"Unable to create security group {spec.name!r}") from exc
            return self._reuse(spec, vpc_id)
        except BotoCoreError as exc:
            raise to_provider_error(exc, f"Unable to create security group {spec.name!r}") from exc

        group_id = response["GroupId"]
        if self._ledger is not None:
            self._ledger.record_security_group(group_id)
        logger.info(
            "Created security group %s <%s> in VPC <%s>", spec.name, group_id, vpc_id,
            extra={"group_id": group_id, "group_name": spec.name, "vpc_id": vpc_id},
        )

        try:
            self._ec2.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[spec.rule.to_ip_permission()],
            )
        except (ClientError, BotoCoreError) as exc:
            raise to_provider_error(
                exc, f"Unable to set security group {spec.name!r} ingress", IngressRuleFailed,
            ) from exc
        logger.info("Authorized ingress %s on %s", spec.rule, spec.name, extra={"group_id": group_id})

        return [g["GroupId"] for g in self._describe_by_name(spec.name, vpc_id)]

    def _reuse(self, spec: SecurityGroupSpec, vpc_id: str) -> list[str]:
        logger.warning(
            "Security group already exists: %s. Changes to its rules will not be applied.",
            spec.name, extra={"group_name": spec.name, "vpc_id": vpc_id},
        )
        groups = self._describe_by_name(spec.name, vpc_id)
        for group in groups:
            if not spec.rule.is_satisfied_by(group.get("IpPermissions", [])):
                logger.warning(
                    "Existing security group %s <%s> does not allow %s",
                    spec.name, group["GroupId"], spec.rule,
                    extra={"group_id": group["GroupId"], "group_name": spec.name},
                )
        return [g["GroupId"] for g in groups]

    def _first_vpc_id(self) -> str:
        try:
            vpcs = self._ec2.describe_vpcs().get("Vpcs", [])
        except (ClientError, BotoCoreError) as exc:
            raise to_provider_error(exc, "Unable to describe VPCs") from exc
        if not vpcs:
            raise NoNetworkAvailable("No VPCs found to associate security group with")
        vpc_id = vpcs[0]["VpcId"]
        logger.info("Using VPC <%s>", vpc_id, extra={"vpc_id": vpc_id})
        return vpc_id

    def _describe_by_name(self, name: str, vpc_id: str) -> list[dict[str, Any]]:
        try:
            response = self._ec2.describe_security_groups(
                Filters=[
                    {"Name": "group-name", "Values": [name]},
                    {"Name": "vpc-id", "Values": [vpc_id]},
                ]
            )
        except (ClientError, BotoCoreError) as exc:
            raise to_provider_error(exc, f"Unable to find security group {name!r}") from exc

        groups = response.get("SecurityGroups", [])
        if not groups:
            raise ProviderError(f"Security group {name!r} not found in VPC {vpc_id}")
        return groups
