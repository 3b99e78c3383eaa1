"""Provision an EC2 instance that runs a Docker container."""

__version__ = "0.1.0"
