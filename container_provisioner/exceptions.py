"""Custom exception hierarchy for the container provisioner."""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base exception for all provisioning errors."""


class ConfigError(ProvisioningError):
    """Invalid or missing configuration."""


class InvalidSpec(ProvisioningError):
    """A security group, instance or bootstrap request is malformed."""


class NoNetworkAvailable(ProvisioningError):
    """The account has no VPC to place the security group in."""


class PayloadTooLarge(ProvisioningError):
    """Instance user data exceeds the EC2 size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Instance user data is too large ({size} bytes, limit {limit})")
        self.size = size
        self.limit = limit


class InstanceNotFound(ProvisioningError):
    """No pending/running instance with the expected id carries the tag."""

    def __init__(self, instance_id: str):
        super().__init__(f"Instance {instance_id} not found")
        self.instance_id = instance_id


class AmbiguousInstance(ProvisioningError):
    """More than one candidate record shares the same instance id."""

    def __init__(self, instance_id: str, count: int):
        super().__init__(f"Instance {instance_id} matched {count} records")
        self.instance_id = instance_id
        self.count = count


class ProvisioningTimedOut(ProvisioningError):
    """The instance did not receive a public address before the deadline."""


class ProvisioningCancelled(ProvisioningError):
    """Provisioning was cancelled by the caller before it finished."""


class AddressLookupError(ProvisioningError):
    """The caller's public IP address could not be determined."""


class TeardownError(ProvisioningError):
    """One or more created resources could not be removed."""

    def __init__(self, failures: list[str]):
        super().__init__("Teardown incomplete: " + "; ".join(failures))
        self.failures = failures


class ProviderError(ProvisioningError):
    """Error returned by the cloud provider API."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class NetworkNotFound(ProviderError):
    """The configured VPC id does not exist."""


class IngressRuleFailed(ProviderError):
    """The security group was created but its ingress rule was rejected."""


class LaunchFailed(ProviderError):
    """RunInstances was rejected."""
