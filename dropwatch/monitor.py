"""Droplet status and snapshot age metrics."""

import math
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from rich.console import Console

from dropwatch.api import DigitalOceanAPI, DigitalOceanAPIError
from dropwatch.errors import raise_for_api_error
from dropwatch.filters import match_droplet

METRIC_STATUS = "1696:Status:9"
METRIC_SNAPSHOT_AGE = "1697:Last Snapshot:4"

HEALTHY_STATUSES = {"active", "new"}

MS_PER_HOUR = 3_600_000
MS_PER_DAY = 86_400_000

# Diagnostics only; stdout carries the metric lines
console = Console(stderr=True)


class Metric(BaseModel):
    """One metric value for one droplet."""

    model_config = ConfigDict(frozen=True)

    metric_id: str
    value: str
    droplet_name: str

    def format_line(self) -> str:
        """Render as ``<metric_id>|<value>|<droplet_name>|``."""
        return f"{self.metric_id}|{self.value}|{self.droplet_name}|"


class MonitorRequest(BaseModel):
    """Parsed monitor arguments."""

    metric_state: list[bool]
    token: str
    droplet_filter: list[str]

    def _enabled(self, index: int) -> bool:
        return index < len(self.metric_state) and self.metric_state[index]

    @property
    def status_enabled(self) -> bool:
        return self._enabled(0)

    @property
    def snapshot_age_enabled(self) -> bool:
        return self._enabled(1)


def status_value(status: str) -> str:
    """Map a droplet status to the Status metric value."""
    if status in HEALTHY_STATUSES:
        return "1"
    return f"0={status}"


def _parse_timestamp(value: str) -> datetime:
    """Parse an API timestamp such as ``2015-04-01T12:00:00Z``."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def snapshot_age_hours(created_at: str, now: datetime) -> int:
    """
    Compute the age in hours reported for one snapshot.

    Only the part of the elapsed time within the current day counts, so a
    snapshot taken 26 hours ago reports 2. The result is rounded half up and
    a zero becomes 1.

    Args:
        created_at: Snapshot creation timestamp from the API
        now: Reference time (timezone-aware)

    Returns:
        Age in hours

    Raises:
        ValueError: If created_at is not a valid timestamp
    """
    elapsed_ms = (now - _parse_timestamp(created_at)).total_seconds() * 1000
    # fmod keeps the sign of the elapsed time, so clock skew gives small negatives
    hours = math.floor(math.fmod(elapsed_ms, MS_PER_DAY) / MS_PER_HOUR + 0.5)
    return hours if hours != 0 else 1


def min_snapshot_age(snapshots: list[dict[str, Any]], now: datetime) -> int | None:
    """Return the smallest snapshot age, or None when there are no snapshots."""
    ages = [snapshot_age_hours(s.get("created_at", ""), now) for s in snapshots]
    return min(ages) if ages else None


def _lookup_snapshot_age(
    api: DigitalOceanAPI,
    droplet: dict[str, Any],
    now: Callable[[], datetime],
) -> Metric:
    snapshots = api.list_droplet_snapshots(int(droplet.get("id", 0)))
    age = min_snapshot_age(snapshots, now())
    return Metric(
        metric_id=METRIC_SNAPSHOT_AGE,
        value="0" if age is None else str(age),
        droplet_name=droplet.get("name", ""),
    )


def run_monitor(
    api: DigitalOceanAPI,
    request: MonitorRequest,
    emit: Callable[[Metric], None],
    now: Callable[[], datetime] | None = None,
    verbose: bool = False,
) -> None:
    """
    Collect and emit metrics for every droplet selected by the filter.

    Status metrics and zero snapshot ages are emitted together once all
    droplets have been inspected. Snapshot lookups run concurrently and
    each result is emitted as soon as it arrives, so the relative order of
    lines is not fixed. A failed lookup is reported on stderr and skipped.

    Args:
        api: DigitalOcean API client
        request: Parsed monitor arguments
        emit: Called once per metric
        now: Clock used for snapshot ages (defaults to current UTC time)
        verbose: Show debug output on stderr

    Raises:
        DropwatchError: If the account check or droplet listing fails
    """
    clock = now or (lambda: datetime.now(UTC))

    try:
        api.get_account()
        droplets = api.list_droplets()
    except DigitalOceanAPIError as e:
        raise_for_api_error(e)

    if verbose:
        console.print(f"[dim][DEBUG] Found {len(droplets)} droplet(s)[/dim]")

    batch: list[Metric] = []
    lookups: list[dict[str, Any]] = []

    for droplet in droplets:
        if not match_droplet(droplet, request.droplet_filter):
            continue

        name = droplet.get("name", "")

        if request.status_enabled:
            batch.append(
                Metric(
                    metric_id=METRIC_STATUS,
                    value=status_value(droplet.get("status", "")),
                    droplet_name=name,
                )
            )

        if request.snapshot_age_enabled:
            if not droplet.get("snapshot_ids"):
                batch.append(Metric(metric_id=METRIC_SNAPSHOT_AGE, value="0", droplet_name=name))
            else:
                lookups.append(droplet)

    if not lookups:
        for metric in batch:
            emit(metric)
        return

    with ThreadPoolExecutor(max_workers=len(lookups)) as executor:
        futures = {
            executor.submit(_lookup_snapshot_age, api, droplet, clock): droplet
            for droplet in lookups
        }

        for metric in batch:
            emit(metric)

        for future in as_completed(futures):
            droplet = futures[future]
            try:
                metric = future.result()
            except (DigitalOceanAPIError, ValueError) as e:
                console.print(
                    f"[yellow]⚠[/yellow] Could not get snapshots for "
                    f"{droplet.get('name', droplet.get('id'))}: {e}"
                )
                continue
            if verbose:
                console.print(f"[dim][DEBUG] Snapshot lookup done: {metric.droplet_name}[/dim]")
            emit(metric)
