"""Data models for security groups, launch requests and EC2 instance snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ELIGIBLE_STATES = ("pending", "running")


@dataclass(frozen=True)
class IngressRule:
    """Inbound rule opening a single port to a single CIDR."""

    port: int
    cidr: str
    protocol: str = "tcp"

    def to_ip_permission(self) -> dict[str, Any]:
        return {
            "IpProtocol": self.protocol,
            "FromPort": self.port,
            "ToPort": self.port,
            "IpRanges": [{"CidrIp": self.cidr}],
        }

    def is_satisfied_by(self, ip_permissions: list[dict[str, Any]]) -> bool:
        """True if an existing group's IpPermissions already carry this rule."""
        for perm in ip_permissions:
            if perm.get("IpProtocol") != self.protocol:
                continue
            if perm.get("FromPort") != self.port or perm.get("ToPort") != self.port:
                continue
            if any(r.get("CidrIp") == self.cidr for r in perm.get("IpRanges", [])):
                return True
            if any(r.get("CidrIpv6") == self.cidr for r in perm.get("Ipv6Ranges", [])):
                return True
        return False

    def __str__(self) -> str:
        return f"{self.protocol}/{self.port} from {self.cidr}"


@dataclass(frozen=True)
class SecurityGroupSpec:
    name: str
    description: str
    rule: IngressRule
    vpc_id: str | None = None  # None/empty = first VPC in the account


@dataclass(frozen=True)
class Tag:
    key: str
    value: str

    def to_filter(self) -> dict[str, Any]:
        return {"Name": f"tag:{self.key}", "Values": [self.value]}

    def to_api(self) -> dict[str, str]:
        return {"Key": self.key, "Value": self.value}


@dataclass(frozen=True)
class InstanceSpec:
    """One RunInstances request. Always launches exactly one instance."""

    image_id: str
    instance_type: str
    tag: Tag
    security_group_ids: tuple[str, ...] = ()
    user_data: str = ""


@dataclass(frozen=True)
class InstanceRecord:
    """Point-in-time view of an EC2 instance."""

    instance_id: str
    state: str
    tags: dict[str, str] = field(default_factory=dict)
    public_dns_name: str = ""
    public_ip_address: str = ""
    private_ip_address: str | None = None
    launch_time: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> InstanceRecord:
        """Build a record from a RunInstances / DescribeInstances instance dict."""
        tags = {t["Key"]: t["Value"] for t in raw.get("Tags", [])}

        launch_time: datetime | None = raw.get("LaunchTime")
        if isinstance(launch_time, datetime) and launch_time.tzinfo is None:
            launch_time = launch_time.replace(tzinfo=timezone.utc)

        return cls(
            instance_id=raw["InstanceId"],
            state=raw.get("State", {}).get("Name", "unknown"),
            tags=tags,
            public_dns_name=raw.get("PublicDnsName") or "",
            public_ip_address=raw.get("PublicIpAddress") or "",
            private_ip_address=raw.get("PrivateIpAddress"),
            launch_time=launch_time,
        )

    @property
    def is_eligible(self) -> bool:
        return self.state in ELIGIBLE_STATES

    @property
    def has_public_address(self) -> bool:
        return bool(self.public_dns_name or self.public_ip_address)

    def endpoints(self, port: int) -> list[str]:
        """HTTP endpoints for the public DNS name and IP, whichever are assigned."""
        hosts = [h for h in (self.public_dns_name, self.public_ip_address) if h]
        return [f"http://{host}:{port}" for host in hosts]


@dataclass(frozen=True)
class ProvisioningRequest:
    """Everything needed to bring up one containerized instance."""

    group: SecurityGroupSpec
    image_id: str
    instance_type: str
    tag: Tag
    container_image: str
    port: int


@dataclass(frozen=True)
class ProvisioningResult:
    instance: InstanceRecord
    security_group_ids: tuple[str, ...]
    port: int

    @property
    def endpoints(self) -> list[str]:
        return self.instance.endpoints(self.port)
