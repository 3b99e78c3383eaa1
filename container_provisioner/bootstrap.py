"""User data script that installs Docker and starts the container on first boot."""

from __future__ import annotations

from .exceptions import InvalidSpec

_TEMPLATE = """#!/bin/bash
yum update -y
yum install -y docker
service docker start
chkconfig docker on
usermod -a -G docker ec2-user
docker run -d -p {port}:{port} --restart unless-stopped {container}
"""


def generate_user_data(container: str, port: int) -> str:
    """Return the boot script publishing ``container`` on host port ``port``.

    Host and container port are the same value.
    """
    if not container:
        raise InvalidSpec("Container image reference is required")
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
        raise InvalidSpec(f"Invalid container port: {port!r}")
    return _TEMPLATE.format(container=container, port=port)
