"""Unattended shutdown and snapshot of a filtered set of droplets.

Each selected droplet runs its own workflow in a worker thread:

    PENDING --shutdown--> AWAITING_POWER_OFF --status "off"--> (snapshot) --> AWAITING_SNAPSHOT
       |                        |                                                  |
       | already off            | attempts exhausted                     completed | errored / exhausted
       +---> (snapshot)         +---> FAILED                                 DONE  +---> FAILED

Polls wait on a shared cancellation event rather than sleeping, so setting
the event stops every workflow at its next tick.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any

from pydantic import BaseModel
from rich.console import Console

from dropwatch.api import DigitalOceanAPI, DigitalOceanAPIError
from dropwatch.config import SchedulerConfig
from dropwatch.errors import raise_for_api_error
from dropwatch.filters import match_droplet

console = Console(stderr=True)


class DropletState(str, Enum):
    """Workflow state of one droplet."""

    PENDING = "pending"
    AWAITING_POWER_OFF = "awaiting_power_off"
    AWAITING_SNAPSHOT = "awaiting_snapshot"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = {DropletState.DONE, DropletState.FAILED}


class DropletOutcome(BaseModel):
    """Final result of one droplet's workflow."""

    droplet_id: int
    droplet_name: str
    state: DropletState
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state == DropletState.FAILED


class SchedulerRequest(BaseModel):
    """Parsed scheduler arguments."""

    token: str
    droplet_filter: list[str]


class SnapshotWorkflow:
    """Shut down one droplet, snapshot it and wait for the snapshot to finish."""

    def __init__(
        self,
        api: DigitalOceanAPI,
        droplet: dict[str, Any],
        settings: SchedulerConfig,
        cancel: threading.Event | None = None,
        verbose: bool = False,
    ):
        self.api = api
        self.droplet_id = int(droplet.get("id", 0))
        self.droplet_name = droplet.get("name", "")
        self.settings = settings
        self.cancel = cancel if cancel is not None else threading.Event()
        self.verbose = verbose

        self.state = DropletState.PENDING
        self.history = [DropletState.PENDING]
        self.action_id: int | None = None
        self.error: str | None = None

    @property
    def snapshot_name(self) -> str:
        return f"{self.droplet_name}{self.settings.snapshot_suffix}"

    def _debug(self, message: str) -> None:
        if self.verbose:
            console.print(f"[dim][DEBUG] {self.droplet_name}: {message}[/dim]")

    def _transition(self, state: DropletState) -> None:
        self._debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, message: str) -> None:
        self.error = message
        self._transition(DropletState.FAILED)

    def _wait_tick(self) -> bool:
        """Wait one poll interval. Returns False (and fails) if cancelled."""
        if self.cancel.wait(self.settings.poll_interval):
            self._fail(f"Cancelled while waiting for droplet {self.droplet_name}")
            return False
        return True

    def run(self) -> DropletOutcome:
        """Drive the workflow until it reaches DONE or FAILED."""
        steps = {
            DropletState.PENDING: self._request_shutdown,
            DropletState.AWAITING_POWER_OFF: self._wait_for_power_off,
            DropletState.AWAITING_SNAPSHOT: self._wait_for_snapshot,
        }

        while self.state not in TERMINAL_STATES:
            steps[self.state]()

        return DropletOutcome(
            droplet_id=self.droplet_id,
            droplet_name=self.droplet_name,
            state=self.state,
            error=self.error,
        )

    def _request_shutdown(self) -> None:
        try:
            self.api.shutdown_droplet(self.droplet_id)
        except DigitalOceanAPIError as e:
            if e.is_already_powered_off:
                self._debug("already powered off")
                self._request_snapshot()
                return
            self._debug(f"shutdown failed: {e}")
            self._fail(f"Error powering off droplet {self.droplet_name}")
            return
        except ValueError as e:
            self._debug(str(e))
            self._fail(f"Error powering off droplet {self.droplet_name}")
            return

        self._transition(DropletState.AWAITING_POWER_OFF)

    def _wait_for_power_off(self) -> None:
        for attempt in range(1, self.settings.power_off_attempts + 1):
            if not self._wait_tick():
                return

            try:
                droplet = self.api.get_droplet(self.droplet_id)
            except DigitalOceanAPIError as e:
                self._debug(f"status poll {attempt} failed: {e}")
                continue

            status = droplet.get("status", "")
            self._debug(f"status poll {attempt}: {status}")
            if status == "off":
                self._request_snapshot()
                return

        self._fail(f"Error waiting for droplet power off: {self.droplet_name}")

    def _request_snapshot(self) -> None:
        try:
            action = self.api.create_snapshot(self.droplet_id, self.snapshot_name)
            action_id = int(action.get("id") or 0)
        except (DigitalOceanAPIError, ValueError, TypeError) as e:
            self._debug(f"snapshot request failed: {e}")
            self._fail(f"Error requesting droplet snapshot: {self.droplet_name}")
            return

        if action_id <= 0:
            self._fail(f"Error requesting droplet snapshot: {self.droplet_name}")
            return

        self.action_id = action_id
        self._transition(DropletState.AWAITING_SNAPSHOT)

    def _wait_for_snapshot(self) -> None:
        for attempt in range(1, self.settings.snapshot_attempts + 1):
            if not self._wait_tick():
                return

            try:
                action = self.api.get_droplet_action(self.droplet_id, self.action_id)
            except DigitalOceanAPIError as e:
                self._debug(f"action poll {attempt} failed: {e}")
                continue

            status = action.get("status", "")
            self._debug(f"action poll {attempt}: {status}")
            if status == "completed":
                self._transition(DropletState.DONE)
                return
            if status == "errored":
                self._fail(f"Error creating snapshot for droplet {self.droplet_name}")
                return

        self._fail(f"Error waiting for droplet snapshot: {self.droplet_name}")


def run_scheduler(
    api: DigitalOceanAPI,
    request: SchedulerRequest,
    settings: SchedulerConfig,
    cancel: threading.Event | None = None,
    verbose: bool = False,
) -> list[DropletOutcome]:
    """
    Run the snapshot workflow on every droplet selected by the filter.

    All workflows start at once and the call returns when every one of them
    has finished. An interrupt while waiting cancels the remaining polls.

    Args:
        api: DigitalOcean API client
        request: Parsed scheduler arguments
        settings: Poll timing and naming settings
        cancel: Event that stops all workflows when set
        verbose: Show debug output on stderr

    Returns:
        One outcome per selected droplet, in listing order

    Raises:
        DropwatchError: If the account check or droplet listing fails
    """
    try:
        api.get_account()
        droplets = api.list_droplets()
    except DigitalOceanAPIError as e:
        raise_for_api_error(e)

    selected = [d for d in droplets if match_droplet(d, request.droplet_filter)]
    if verbose:
        console.print(
            f"[dim][DEBUG] {len(selected)} of {len(droplets)} droplet(s) selected[/dim]"
        )
    if not selected:
        return []

    cancel = cancel if cancel is not None else threading.Event()
    workflows = [SnapshotWorkflow(api, d, settings, cancel, verbose) for d in selected]

    with ThreadPoolExecutor(max_workers=len(workflows)) as executor:
        futures = [executor.submit(workflow.run) for workflow in workflows]
        try:
            return [future.result() for future in futures]
        except KeyboardInterrupt:
            console.print("[yellow]⚠[/yellow] Interrupted, cancelling pending polls...")
            cancel.set()
            return [future.result() for future in futures]


def summarize_failures(outcomes: list[DropletOutcome], limit: int = 200) -> str | None:
    """
    Join the error messages of failed droplets.

    Messages are added one per line until the text grows past ``limit``
    characters.

    Returns:
        The joined messages, or None if no droplet failed
    """
    failures = [
        o.error or f"Error processing droplet {o.droplet_name}" for o in outcomes if o.failed
    ]
    if not failures:
        return None

    message = ""
    for failure in failures:
        message += failure + "\n"
        if len(message) > limit:
            break

    return message.strip()
