"""Resolve AWS region and keys from flags, the environment, or an interactive prompt."""

from __future__ import annotations

import getpass
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import replace

import boto3
from botocore.exceptions import ProfileNotFound

from .config import AWSConfig
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_REGION = "AWS_REGION"
ENV_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
ENV_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"


class CredentialResolver:
    """Fills empty AWSConfig fields: explicit value, then environment, then prompt.

    With a named profile only the region is resolved, and the profile's own
    region is tried before prompting.

    The environment is only read. The resolved values are handed to boto3
    through the returned AWSConfig.
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
    ):
        self._environ = os.environ if environ is None else environ
        self._prompt = prompt
        self._secret_prompt = secret_prompt

    def resolve(self, aws: AWSConfig) -> AWSConfig:
        # A named profile supplies its own keys, and usually its region
        if aws.credential_profile:
            region = aws.region or self._environ.get(ENV_REGION, "") or self._profile_region(aws.credential_profile)
            return replace(aws, region=self._value(region, ENV_REGION, self._prompt))

        region = self._value(aws.region, ENV_REGION, self._prompt)
        access_key_id = self._value(aws.access_key_id, ENV_ACCESS_KEY_ID, self._prompt)
        secret_access_key = self._value(aws.secret_access_key, ENV_SECRET_ACCESS_KEY, self._secret_prompt)
        return replace(
            aws,
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        )

    @staticmethod
    def _profile_region(profile: str) -> str:
        try:
            region = boto3.Session(profile_name=profile).region_name
        except ProfileNotFound as exc:
            raise ConfigError(f"AWS profile '{profile}' not found") from exc
        if region:
            logger.debug("Using region %s from profile %s", region, profile)
        return region or ""

    def _value(self, explicit: str, env_key: str, prompt: Callable[[str], str]) -> str:
        if explicit:
            return explicit
        from_env = self._environ.get(env_key, "")
        if from_env:
            logger.debug("Using %s from environment", env_key)
            return from_env
        try:
            value = prompt(f"Enter {env_key}: ").strip().strip("\x00")
        except EOFError:
            value = ""
        if not value:
            raise ConfigError(f"{env_key} is required")
        return value
