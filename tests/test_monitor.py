"""Tests for the monitor metrics."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from dropwatch.api import DigitalOceanAPIError
from dropwatch.errors import (
    DropwatchError,
    ExitCode,
    InvalidAuthenticationError,
    ProviderError,
)
from dropwatch.monitor import (
    METRIC_SNAPSHOT_AGE,
    METRIC_STATUS,
    Metric,
    MonitorRequest,
    min_snapshot_age,
    run_monitor,
    snapshot_age_hours,
    status_value,
)

NOW = datetime(2015, 4, 10, 12, 0, 0, tzinfo=UTC)


def create_droplet(
    droplet_id: int = 1,
    name: str = "web1",
    status: str = "active",
    snapshot_ids: list[int] | None = None,
) -> dict:
    """Create a mock droplet dictionary."""
    return {
        "id": droplet_id,
        "name": name,
        "status": status,
        "snapshot_ids": snapshot_ids or [],
    }


def create_request(metric_state="1,1", droplet_filter=None) -> MonitorRequest:
    return MonitorRequest(
        metric_state=[t == "1" for t in metric_state.split(",")],
        token="tok",
        droplet_filter=droplet_filter or [],
    )


def collect(api, request) -> list[str]:
    """Run the monitor and return the emitted lines."""
    lines: list[str] = []
    run_monitor(api, request, lambda m: lines.append(m.format_line()), now=lambda: NOW)
    return lines


class TestStatusValue:
    """Tests for status_value."""

    @pytest.mark.parametrize("status", ["active", "new"])
    def test_healthy(self, status):
        assert status_value(status) == "1"

    @pytest.mark.parametrize("status", ["off", "archive", "error", ""])
    def test_unhealthy(self, status):
        assert status_value(status) == f"0={status}"


class TestSnapshotAgeHours:
    """Tests for snapshot_age_hours."""

    def test_five_hours(self):
        assert snapshot_age_hours("2015-04-10T07:00:00Z", NOW) == 5

    def test_rounds_half_up(self):
        assert snapshot_age_hours("2015-04-10T09:30:00Z", NOW) == 3

    def test_rounds_down_below_half(self):
        assert snapshot_age_hours("2015-04-10T09:31:00Z", NOW) == 2

    def test_zero_becomes_one(self):
        """Test that a very recent snapshot reports 1 hour."""
        assert snapshot_age_hours("2015-04-10T11:50:00Z", NOW) == 1

    def test_only_time_within_day_counts(self):
        """Test that whole days are dropped from the age."""
        assert snapshot_age_hours("2015-04-09T10:00:00Z", NOW) == 2

    def test_exact_days_become_one(self):
        assert snapshot_age_hours("2015-04-07T12:00:00Z", NOW) == 1

    def test_offset_timestamp(self):
        assert snapshot_age_hours("2015-04-10T09:00:00+02:00", NOW) == 5

    def test_naive_timestamp_is_utc(self):
        assert snapshot_age_hours("2015-04-10T07:00:00", NOW) == 5

    def test_invalid_timestamp(self):
        with pytest.raises(ValueError):
            snapshot_age_hours("yesterday", NOW)

    def test_missing_timestamp(self):
        """Test that a null created_at is rejected like a malformed one."""
        with pytest.raises(ValueError):
            snapshot_age_hours(None, NOW)


class TestMinSnapshotAge:
    """Tests for min_snapshot_age."""

    def test_no_snapshots(self):
        assert min_snapshot_age([], NOW) is None

    def test_minimum_across_snapshots(self):
        snapshots = [
            {"created_at": "2015-04-10T02:00:00Z"},
            {"created_at": "2015-04-10T09:00:00Z"},
            {"created_at": "2015-04-10T05:00:00Z"},
        ]
        assert min_snapshot_age(snapshots, NOW) == 3


class TestMonitorRequest:
    """Tests for metric toggles."""

    def test_both_enabled(self):
        request = create_request("1,1")
        assert request.status_enabled
        assert request.snapshot_age_enabled

    def test_missing_toggle_is_off(self):
        request = create_request("1")
        assert request.status_enabled
        assert not request.snapshot_age_enabled


class TestMetric:
    """Tests for metric line rendering."""

    def test_format_line(self):
        metric = Metric(metric_id=METRIC_STATUS, value="0=off", droplet_name="db")
        assert metric.format_line() == "1696:Status:9|0=off|db|"


class TestRunMonitor:
    """Tests for run_monitor."""

    def test_example_output(self):
        """Test the single active droplet with no snapshots."""
        api = MagicMock()
        api.list_droplets.return_value = [create_droplet()]

        lines = collect(api, create_request("1,1"))

        assert lines == ["1696:Status:9|1|web1|", "1697:Last Snapshot:4|0|web1|"]
        api.get_account.assert_called_once()
        api.list_droplet_snapshots.assert_not_called()

    def test_snapshot_lookup(self):
        """Test the minimum age is reported for a droplet with snapshots."""
        api = MagicMock()
        api.list_droplets.return_value = [create_droplet(droplet_id=7, snapshot_ids=[1, 2])]
        api.list_droplet_snapshots.return_value = [
            {"created_at": "2015-04-10T04:00:00Z"},
            {"created_at": "2015-04-10T06:00:00Z"},
        ]

        lines = collect(api, create_request("0,1"))

        assert lines == [f"{METRIC_SNAPSHOT_AGE}|6|web1|"]
        api.list_droplet_snapshots.assert_called_once_with(7)

    def test_empty_snapshot_listing(self):
        """Test a droplet whose snapshot listing comes back empty."""
        api = MagicMock()
        api.list_droplets.return_value = [create_droplet(snapshot_ids=[1])]
        api.list_droplet_snapshots.return_value = []

        assert collect(api, create_request("0,1")) == [f"{METRIC_SNAPSHOT_AGE}|0|web1|"]

    def test_status_only(self):
        api = MagicMock()
        api.list_droplets.return_value = [
            create_droplet(name="web1", status="active", snapshot_ids=[1]),
            create_droplet(droplet_id=2, name="db1", status="off"),
        ]

        lines = collect(api, create_request("1,0"))

        assert lines == ["1696:Status:9|1|web1|", "1696:Status:9|0=off|db1|"]
        api.list_droplet_snapshots.assert_not_called()

    def test_filter_applied(self):
        api = MagicMock()
        api.list_droplets.return_value = [
            create_droplet(droplet_id=1, name="web1"),
            create_droplet(droplet_id=2, name="db1"),
            create_droplet(droplet_id=3, name="cache"),
        ]

        lines = collect(api, create_request("1,0", ["DB", "3"]))

        assert lines == ["1696:Status:9|1|db1|", "1696:Status:9|1|cache|"]

    def test_mixed_output_contains_every_metric(self):
        """Test that lines from lookups and the batch are all emitted, in any order."""
        api = MagicMock()
        api.list_droplets.return_value = [
            create_droplet(droplet_id=1, name="web1", snapshot_ids=[10]),
            create_droplet(droplet_id=2, name="web2", snapshot_ids=[20]),
            create_droplet(droplet_id=3, name="web3"),
        ]
        ages = {1: "2015-04-10T10:00:00Z", 2: "2015-04-10T08:00:00Z"}
        api.list_droplet_snapshots.side_effect = lambda droplet_id: [
            {"created_at": ages[droplet_id]}
        ]

        lines = collect(api, create_request("1,1"))

        assert sorted(lines) == sorted(
            [
                "1696:Status:9|1|web1|",
                "1696:Status:9|1|web2|",
                "1696:Status:9|1|web3|",
                "1697:Last Snapshot:4|0|web3|",
                "1697:Last Snapshot:4|2|web1|",
                "1697:Last Snapshot:4|4|web2|",
            ]
        )

    def test_failed_lookup_skips_only_that_droplet(self):
        api = MagicMock()
        api.list_droplets.return_value = [
            create_droplet(droplet_id=1, name="web1", snapshot_ids=[10]),
            create_droplet(droplet_id=2, name="web2", snapshot_ids=[20]),
        ]

        def snapshots(droplet_id):
            if droplet_id == 1:
                raise DigitalOceanAPIError("API error: boom", 500)
            return [{"created_at": "2015-04-10T09:00:00Z"}]

        api.list_droplet_snapshots.side_effect = snapshots

        lines = collect(api, create_request("0,1"))

        assert lines == ["1697:Last Snapshot:4|3|web2|"]

    def test_null_created_at_skips_only_that_droplet(self):
        """Test that a snapshot without created_at does not stop other lookups."""
        api = MagicMock()
        api.list_droplets.return_value = [
            create_droplet(droplet_id=1, name="web1", snapshot_ids=[10]),
            create_droplet(droplet_id=2, name="web2", snapshot_ids=[20]),
        ]

        def snapshots(droplet_id):
            if droplet_id == 1:
                return [{"created_at": None}]
            return [{"created_at": "2015-04-10T09:00:00Z"}]

        api.list_droplet_snapshots.side_effect = snapshots

        lines = collect(api, create_request("0,1"))

        assert lines == ["1697:Last Snapshot:4|3|web2|"]

    def test_unauthorized(self):
        api = MagicMock()
        api.get_account.side_effect = DigitalOceanAPIError(
            "API error: Unable to authenticate you.", 401, error_id="unauthorized"
        )

        with pytest.raises(InvalidAuthenticationError) as exc_info:
            collect(api, create_request())

        assert exc_info.value.exit_code == ExitCode.INVALID_AUTHENTICATION
        assert exc_info.value.message == "Invalid authentication."
        api.list_droplets.assert_not_called()

    def test_provider_error_echoes_message(self):
        api = MagicMock()
        api.get_account.side_effect = DigitalOceanAPIError(
            "API error: Too many requests",
            429,
            error_id="too_many_requests",
            provider_message="Too many requests",
        )

        with pytest.raises(ProviderError) as exc_info:
            collect(api, create_request())

        assert exc_info.value.message == "Too many requests"
        assert exc_info.value.exit_code == -2

    def test_network_error_is_generic(self):
        api = MagicMock()
        api.get_account.side_effect = DigitalOceanAPIError("Network error: refused")

        with pytest.raises(DropwatchError) as exc_info:
            collect(api, create_request())

        assert not isinstance(exc_info.value, ProviderError)
        assert exc_info.value.exit_code == ExitCode.GENERIC_ERROR

    def test_list_failure(self):
        api = MagicMock()
        api.list_droplets.side_effect = DigitalOceanAPIError(
            "API error: Server error", 500, provider_message="Server error"
        )

        with pytest.raises(ProviderError, match="Server error"):
            collect(api, create_request())
