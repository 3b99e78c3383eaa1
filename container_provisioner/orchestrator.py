"""End-to-end provisioning: security group -> instance launch -> wait for a public address."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Any

from .bootstrap import generate_user_data
from .config import PollingConfig
from .exceptions import (
    ProvisioningCancelled,
    ProvisioningError,
    ProvisioningTimedOut,
    TeardownError,
)
from .provisioning.instances import InstanceProvisioner, InstanceResolver
from .provisioning.ledger import ResourceLedger
from .provisioning.models import (
    InstanceRecord,
    InstanceSpec,
    ProvisioningRequest,
    ProvisioningResult,
    Tag,
)
from .provisioning.security_groups import SecurityGroupProvisioner

logger = logging.getLogger(__name__)


class ProvisioningState(enum.Enum):
    INIT = "init"
    GROUP_READY = "group_ready"
    INSTANCE_LAUNCHED = "instance_launched"
    RESOLVING = "resolving"
    NETWORK_ASSIGNED = "network_assigned"
    ABORTED = "aborted"


class ProvisioningOrchestrator:
    """Runs one provisioning sequence and owns the post-launch polling loop.

    Every step either advances the state or raises a ProvisioningError, which
    moves the orchestrator to ABORTED. Resources created before the failure
    stay in place unless ``teardown_on_failure`` is set or the caller invokes
    :meth:`teardown`.
    """

    def __init__(
        self,
        ec2: Any,
        polling: PollingConfig | None = None,
        teardown_on_failure: bool = False,
        ledger: ResourceLedger | None = None,
    ):
        self._ec2 = ec2
        self._polling = polling or PollingConfig()
        self._teardown_on_failure = teardown_on_failure
        self.ledger = ledger if ledger is not None else ResourceLedger()
        self.groups = SecurityGroupProvisioner(ec2, self.ledger)
        self.instances = InstanceProvisioner(ec2, self.ledger)
        self.resolver = InstanceResolver(ec2)
        self.state = ProvisioningState.INIT
        self.transitions: list[ProvisioningState] = [ProvisioningState.INIT]
        self.failed_state: ProvisioningState | None = None

    def run(
        self,
        request: ProvisioningRequest,
        cancel_event: threading.Event | None = None,
    ) -> ProvisioningResult:
        """Provision the instance and block until it has a public address."""
        cancel_event = cancel_event or threading.Event()
        try:
            self._check_cancelled(cancel_event, "creating the security group")
            group_ids = self.groups.ensure_group(request.group)
            self._transition(ProvisioningState.GROUP_READY)

            user_data = generate_user_data(request.container_image, request.port)
            self._check_cancelled(cancel_event, "launching the instance")
            launched = self.instances.launch(InstanceSpec(
                image_id=request.image_id,
                instance_type=request.instance_type,
                tag=request.tag,
                security_group_ids=tuple(group_ids),
                user_data=user_data,
            ))
            self._transition(ProvisioningState.INSTANCE_LAUNCHED)

            instance = self._wait_for_address(request.tag, launched.instance_id, cancel_event)
            self._transition(ProvisioningState.NETWORK_ASSIGNED)
        except ProvisioningError as exc:
            self._abort(exc)
            raise

        result = ProvisioningResult(
            instance=instance,
            security_group_ids=tuple(group_ids),
            port=request.port,
        )
        for endpoint in result.endpoints:
            logger.info("Instance reachable at %s", endpoint,
                        extra={"instance_id": instance.instance_id, "endpoint": endpoint})
        return result

    def teardown(self, wait: bool = True) -> None:
        """Remove the resources this run created. Raises TeardownError on partial failure."""
        if self.ledger.is_empty():
            logger.info("Nothing to tear down")
            return
        self.ledger.teardown(self._ec2, wait=wait)

    # ── Polling ──────────────────────────────────────────────────────

    def _wait_for_address(
        self, tag: Tag, instance_id: str, cancel_event: threading.Event
    ) -> InstanceRecord:
        """Re-fetch the instance until it reports a public DNS name or IP."""
        self._transition(ProvisioningState.RESOLVING)
        logger.info("Waiting for AWS to assign a public address to %s", instance_id,
                    extra={"instance_id": instance_id})

        start = time.monotonic()
        deadline = start + self._polling.timeout_seconds
        delay = self._polling.interval_seconds
        attempt = 0

        while True:
            attempt += 1
            instance = self.resolver.locate(tag, instance_id)
            if instance.has_public_address:
                logger.info(
                    "Public address assigned after %d polls", attempt,
                    extra={"instance_id": instance_id, "attempt": attempt,
                           "elapsed_seconds": round(time.monotonic() - start, 2)},
                )
                return instance

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProvisioningTimedOut(
                    f"Instance {instance_id} had no public address after "
                    f"{self._polling.timeout_seconds}s ({attempt} polls)"
                )

            logger.debug("No public address yet (state %s), sleeping %.2fs", instance.state, delay,
                         extra={"instance_id": instance_id, "attempt": attempt, "state": instance.state})
            if cancel_event.wait(min(delay, remaining)):
                raise ProvisioningCancelled(f"Stopped waiting for instance {instance_id}")
            delay = min(delay * self._polling.backoff_factor, self._polling.max_interval_seconds)

    # ── State handling ───────────────────────────────────────────────

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event, step: str) -> None:
        if cancel_event.is_set():
            raise ProvisioningCancelled(f"Cancelled before {step}")

    def _transition(self, state: ProvisioningState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def _abort(self, exc: ProvisioningError) -> None:
        self.failed_state = self.state
        logger.error("Provisioning aborted during %s: %s", self.state.value, exc,
                     extra={"state": self.state.value})
        self._transition(ProvisioningState.ABORTED)

        if self._teardown_on_failure and not self.ledger.is_empty():
            logger.info("Tearing down resources created before the failure")
            try:
                self.ledger.teardown(self._ec2)
            except TeardownError as teardown_exc:
                logger.error("%s", teardown_exc)
