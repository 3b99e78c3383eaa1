"""Argument parsing, configuration loading, and provisioning bootstrap."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace
from types import FrameType

from .config import AppConfig, load_config, validate_config
from .credentials import CredentialResolver
from .exceptions import ConfigError, ProvisioningCancelled, ProvisioningError
from .logging_config import configure_logging
from .orchestrator import ProvisioningOrchestrator
from .provisioning.models import IngressRule, ProvisioningRequest, SecurityGroupSpec, Tag
from .provisioning.session import build_ec2_client
from .public_address import PublicAddressLookup

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="container-provisioner",
        description="Launch an EC2 instance running a Docker container",
    )
    parser.add_argument("-c", "--config", help="Path to a YAML configuration file")

    creds = parser.add_argument_group("AWS credentials")
    creds.add_argument("--region", help="AWS region (default: $AWS_REGION, else prompt)")
    creds.add_argument("--access-key-id", help="AWS access key id (default: $AWS_ACCESS_KEY_ID, else prompt)")
    creds.add_argument("--secret-access-key",
                       help="AWS secret access key (default: $AWS_SECRET_ACCESS_KEY, else prompt)")
    creds.add_argument("--profile", help="Named AWS profile to use instead of access keys")

    deploy = parser.add_argument_group("deployment")
    deploy.add_argument("--container", help="Container image to run")
    deploy.add_argument("--port", type=int, help="Port published by the container and opened in the security group")
    deploy.add_argument("--ami-id", help="AMI to launch")
    deploy.add_argument("--instance-type", help="EC2 instance type")
    deploy.add_argument("--tag-key", help="Tag key used to find the instance")
    deploy.add_argument("--tag-value", help="Tag value used to find the instance")
    deploy.add_argument("--group-name", help="Security group name")
    deploy.add_argument("--group-description", help="Security group description")
    deploy.add_argument("--vpc-id", help="VPC for the security group (default: first VPC)")
    deploy.add_argument("--cidr", help="Source CIDR allowed to reach the port (default: your public IP /32)")
    deploy.add_argument("--timeout", type=float, help="Seconds to wait for a public address")
    deploy.add_argument(
        "--teardown-on-failure",
        action="store_true",
        default=None,
        help="Remove resources created by this run if a later step fails",
    )

    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, ...)")
    parser.add_argument("--log-format", choices=("json", "text"), help="Log output format")
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration and exit",
    )
    return parser


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return config with every command-line value that was given layered on top."""

    def _pick(section, mapping: dict[str, str]):
        changes = {
            field_name: getattr(args, arg_name)
            for field_name, arg_name in mapping.items()
            if getattr(args, arg_name) is not None
        }
        return replace(section, **changes) if changes else section

    config = replace(
        config,
        aws=_pick(config.aws, {
            "region": "region",
            "access_key_id": "access_key_id",
            "secret_access_key": "secret_access_key",
            "credential_profile": "profile",
        }),
        container=_pick(config.container, {"image": "container", "port": "port"}),
        instance=_pick(config.instance, {
            "ami_id": "ami_id",
            "instance_type": "instance_type",
            "tag_key": "tag_key",
            "tag_value": "tag_value",
        }),
        security_group=_pick(config.security_group, {
            "name": "group_name",
            "description": "group_description",
            "vpc_id": "vpc_id",
            "cidr": "cidr",
        }),
        polling=_pick(config.polling, {"timeout_seconds": "timeout"}),
        logging=_pick(config.logging, {"level": "log_level", "format": "log_format"}),
    )
    if args.teardown_on_failure is not None:
        config = replace(config, teardown_on_failure=args.teardown_on_failure)
    return config


def build_request(config: AppConfig, cidr: str) -> ProvisioningRequest:
    return ProvisioningRequest(
        group=SecurityGroupSpec(
            name=config.security_group.name,
            description=config.security_group.description,
            rule=IngressRule(port=config.container.port, cidr=cidr),
            vpc_id=config.security_group.vpc_id or None,
        ),
        image_id=config.instance.ami_id,
        instance_type=config.instance.instance_type,
        tag=Tag(config.instance.tag_key, config.instance.tag_value),
        container_image=config.container.image,
        port=config.container.port,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config = apply_overrides(load_config(args.config), args)
        validate_config(config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration is valid")
        return 0

    try:
        aws = CredentialResolver().resolve(config.aws)
        cidr = config.security_group.cidr or PublicAddressLookup().lookup_cidr()
        ec2 = build_ec2_client(aws)
    except ProvisioningError as exc:
        logger.error("Fatal error: %s", exc)
        return 1

    orchestrator = ProvisioningOrchestrator(
        ec2,
        polling=config.polling,
        teardown_on_failure=config.teardown_on_failure,
    )
    cancel_event = threading.Event()

    def _handle_shutdown(signum: int, frame: FrameType | None) -> None:
        logger.info("Received %s, cancelling", signal.Signals(signum).name)
        cancel_event.set()

    previous = {sig: signal.signal(sig, _handle_shutdown) for sig in (signal.SIGTERM, signal.SIGINT)}
    try:
        logger.info("Provisioning %s in %s", config.container.image, aws.region)
        orchestrator.run(build_request(config, cidr), cancel_event=cancel_event)
    except ProvisioningCancelled as exc:
        logger.warning("%s", exc)
        return 130
    except ProvisioningError as exc:
        logger.error("Fatal error: %s", exc)
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    logger.info("Finished. Please wait for the instance to boot and start the container.")
    return 0
