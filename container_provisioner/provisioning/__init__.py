"""EC2 provisioning building blocks: security groups, instances, resource ledger."""

from __future__ import annotations

from .instances import MAX_USER_DATA_BYTES, InstanceProvisioner, InstanceResolver
from .ledger import ResourceLedger
from .models import (
    IngressRule,
    InstanceRecord,
    InstanceSpec,
    ProvisioningRequest,
    ProvisioningResult,
    SecurityGroupSpec,
    Tag,
)
from .security_groups import SecurityGroupProvisioner
from .session import build_ec2_client

__all__ = [
    "MAX_USER_DATA_BYTES",
    "IngressRule",
    "InstanceProvisioner",
    "InstanceRecord",
    "InstanceResolver",
    "InstanceSpec",
    "ProvisioningRequest",
    "ProvisioningResult",
    "ResourceLedger",
    "SecurityGroupProvisioner",
    "SecurityGroupSpec",
    "Tag",
    "build_ec2_client",
]
