"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import ipaddress
import os
import re
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class AWSConfig:
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    credential_profile: str = ""  # empty = use explicit keys or the default boto3 chain


@dataclass(frozen=True)
class ContainerConfig:
    image: str = "stevemcquaid/python-flask-docker-hello-world:latest"
    port: int = 80


@dataclass(frozen=True)
class InstanceConfig:
    ami_id: str = "ami-97785bed"
    instance_type: str = "t2.micro"
    tag_key: str = "Name"
    tag_value: str = "gaws"


@dataclass(frozen=True)
class SecurityGroupConfig:
    name: str = "gaws-SG"
    description: str = "Allow access to my docker container"
    vpc_id: str = ""  # empty = first VPC in the account
    cidr: str = ""  # empty = caller's public IP /32


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: float = 0.5
    backoff_factor: float = 1.5
    max_interval_seconds: float = 10.0
    timeout_seconds: float = 600.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    aws: AWSConfig = field(default_factory=AWSConfig)
    container: ContainerConfig = field(default_factory=ContainerConfig)
    instance: InstanceConfig = field(default_factory=InstanceConfig)
    security_group: SecurityGroupConfig = field(default_factory=SecurityGroupConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    teardown_on_failure: bool = False


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        if dc_type is not None:
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"Configuration section '{key}' must be a mapping")
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate configuration from a YAML file.

    With no path the built-in defaults are validated and returned.
    """
    if path is None:
        config = AppConfig()
        validate_config(config)
        return config

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    validate_config(config)
    return config


def validate_config(config: AppConfig) -> None:
    """Validate configuration values."""
    port = config.container.port
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        raise ConfigError("container.port must be an integer between 1 and 65535")

    if not config.container.image:
        raise ConfigError("container.image must not be empty")

    if not config.instance.ami_id or not config.instance.instance_type:
        raise ConfigError("instance.ami_id and instance.instance_type are required")

    if not config.instance.tag_key:
        raise ConfigError("instance.tag_key must not be empty")

    if config.security_group.cidr:
        try:
            ipaddress.ip_network(config.security_group.cidr, strict=False)
        except ValueError:
            raise ConfigError(
                f"security_group.cidr is not a valid network: {config.security_group.cidr!r}"
            ) from None

    polling = config.polling
    if polling.interval_seconds <= 0:
        raise ConfigError("polling.interval_seconds must be > 0")
    if polling.backoff_factor < 1:
        raise ConfigError("polling.backoff_factor must be >= 1")
    if polling.max_interval_seconds < polling.interval_seconds:
        raise ConfigError("polling.max_interval_seconds must be >= polling.interval_seconds")
    if polling.timeout_seconds <= 0:
        raise ConfigError("polling.timeout_seconds must be > 0")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")
