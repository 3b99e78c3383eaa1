"""boto3 EC2 client construction and botocore error translation."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AWSConfig
from ..exceptions import ProviderError

logger = logging.getLogger(__name__)


def build_ec2_client(aws_config: AWSConfig) -> Any:
    """Create an EC2 client from explicit configuration.

    Credentials go straight into the session; the process environment is left alone.
    """
    session_kwargs: dict[str, Any] = {"region_name": aws_config.region}
    if aws_config.credential_profile:
        session_kwargs["profile_name"] = aws_config.credential_profile
    elif aws_config.access_key_id and aws_config.secret_access_key:
        session_kwargs["aws_access_key_id"] = aws_config.access_key_id
        session_kwargs["aws_secret_access_key"] = aws_config.secret_access_key

    try:
        session = boto3.Session(**session_kwargs)
        return session.client("ec2")
    except BotoCoreError as exc:
        raise to_provider_error(exc, "Unable to create EC2 client") from exc


def error_code(exc: Exception) -> str | None:
    """Return the AWS error code of a ClientError, or None."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def error_message(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Message") or str(exc)
    return str(exc)


def to_provider_error(
    exc: ClientError | BotoCoreError,
    context: str,
    error_cls: type[ProviderError] = ProviderError,
) -> ProviderError:
    """Wrap a botocore exception in the provisioner's error hierarchy."""
    code = error_code(exc)
    detail = f"{code}: {error_message(exc)}" if code else error_message(exc)
    return error_cls(f"{context}: {detail}", code=code)
