"""Tests for the quota history ledger."""

from datetime import UTC, datetime
from pathlib import Path

import orjson
import pytest
from conftest import FakeClock

from claude_quota_monitor.history import HistoryLedger, TrendDirection


def fill(
    ledger: HistoryLedger,
    clock: FakeClock,
    samples: list[tuple[float, float]],
    spacing_minutes: float = 1,
) -> None:
    for i, (five_hour, seven_day) in enumerate(samples):
        if i:
            clock.advance_minutes(spacing_minutes)
        assert ledger.add_entry(five_hour, seven_day)


@pytest.fixture
def ledger(clock: FakeClock) -> HistoryLedger:
    return HistoryLedger(clock=clock)


@pytest.mark.unit
class TestAddEntry:
    def test_rounds_to_two_decimals(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        ledger.add_entry(12.3456, 7.891)

        latest = ledger.get_latest_entry()
        assert latest is not None
        assert latest.timestamp == clock.now
        assert latest.five_hour == 12.35
        assert latest.seven_day == 7.89

    def test_rejects_samples_closer_than_thirty_seconds(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        assert ledger.add_entry(10, 10) is True
        clock.advance_seconds(29)
        assert ledger.add_entry(11, 11) is False
        clock.advance_seconds(1)
        assert ledger.add_entry(12, 12) is True

        assert [e.five_hour for e in ledger.get_entries()] == [10, 12]

    def test_evicts_oldest_beyond_capacity(self, clock: FakeClock) -> None:
        ledger = HistoryLedger(max_entries=3, clock=clock)

        fill(ledger, clock, [(float(i), 0.0) for i in range(5)])

        assert len(ledger) == 3
        assert [e.five_hour for e in ledger.get_entries()] == [2, 3, 4]


@pytest.mark.unit
class TestQueries:
    def test_entries_since(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(1, 1), (2, 2), (3, 3)], spacing_minutes=10)

        since = clock.now - 10 * 60 * 1000
        assert [e.five_hour for e in ledger.get_entries(since)] == [2, 3]

    def test_entries_for_period(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(1, 1), (2, 2)], spacing_minutes=120)

        assert [e.five_hour for e in ledger.get_entries_for_period(1)] == [2]
        assert len(ledger.get_entries_for_period(3)) == 2

    def test_stats(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(10, 50), (20, 55), (40, 60)])

        stats = ledger.get_stats(24)

        assert stats is not None
        assert stats.avg_five_hour == 23.3
        assert stats.avg_seven_day == 55.0
        assert stats.max_five_hour == 40
        assert stats.min_five_hour == 10
        assert stats.max_seven_day == 60
        assert stats.min_seven_day == 50
        assert stats.entry_count == 3

    def test_stats_empty(self, ledger: HistoryLedger) -> None:
        assert ledger.get_stats(24) is None

    def test_clear(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(1, 1), (2, 2)])

        ledger.clear_history()

        assert len(ledger) == 0
        assert ledger.get_latest_entry() is None


@pytest.mark.unit
class TestTrend:
    def test_rising_session_usage(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(10, 20), (40, 20)], spacing_minutes=15)

        trend = ledger.get_trend(30)

        assert trend is not None
        assert trend.five_hour.direction == TrendDirection.UP
        assert trend.five_hour.delta == pytest.approx(120)
        assert trend.seven_day.direction == TrendDirection.STABLE
        assert trend.seven_day.delta == 0

    def test_falling(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(60, 30), (50, 29), (40, 28), (30, 27)], spacing_minutes=5)

        trend = ledger.get_trend(30)

        assert trend is not None
        assert trend.five_hour.direction == TrendDirection.DOWN
        assert trend.five_hour.delta == pytest.approx(-80)
        assert trend.seven_day.delta == pytest.approx(-8)
        assert trend.seven_day.direction == TrendDirection.DOWN

    def test_rate_uses_half_the_lookback_span(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(10, 5), (20, 5), (30, 6), (40, 6)], spacing_minutes=10)

        trend = ledger.get_trend(30)

        assert trend is not None
        # (35 - 15) points over a quarter of an hour
        assert trend.five_hour.delta == pytest.approx(80)
        assert trend.seven_day.delta == pytest.approx(4)
        assert trend.seven_day.direction == TrendDirection.UP

    def test_constant_usage_is_stable(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(42, 17)] * 6, spacing_minutes=5)

        trend = ledger.get_trend(30)

        assert trend is not None
        assert trend.five_hour.direction == TrendDirection.STABLE
        assert trend.five_hour.delta == 0
        assert trend.seven_day.direction == TrendDirection.STABLE
        assert trend.seven_day.delta == 0

    def test_small_changes_are_stable(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(50, 50), (50.5, 50)], spacing_minutes=20)

        trend = ledger.get_trend(30)

        assert trend is not None
        assert trend.five_hour.direction == TrendDirection.STABLE

    def test_needs_two_samples_in_lookback(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(10, 10), (40, 40)], spacing_minutes=45)

        assert ledger.get_trend(30) is None

    def test_empty(self, ledger: HistoryLedger) -> None:
        assert ledger.get_trend() is None


@pytest.mark.unit
class TestTimeToThreshold:
    def test_estimate_from_rising_trend(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(10, 20), (40, 20)], spacing_minutes=15)

        estimate = ledger.estimate_time_to_threshold(90)

        assert estimate is not None
        assert estimate.five_hour == pytest.approx(25 / 60)
        assert estimate.seven_day is None
        assert estimate.soonest == pytest.approx(25 / 60)

    def test_already_past_threshold(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        fill(ledger, clock, [(80, 20), (95, 20)], spacing_minutes=15)

        estimate = ledger.estimate_time_to_threshold(90)

        assert estimate is not None
        assert estimate.five_hour is None

    def test_far_future_discarded(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        # +1.6 points per hour from 10.4% needs ~50h to reach 90%
        fill(ledger, clock, [(10.0, 0), (10.4, 0)], spacing_minutes=30)

        trend = ledger.get_trend(30)
        assert trend is not None

        estimate = ledger.estimate_time_to_threshold(90)
        assert estimate is not None
        assert estimate.five_hour is None
        assert estimate.soonest is None

    def test_without_trend(self, ledger: HistoryLedger) -> None:
        ledger.add_entry(10, 10)

        assert ledger.estimate_time_to_threshold(90) is None


@pytest.mark.unit
class TestChartData:
    def test_downsamples(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(float(i), float(i)) for i in range(120)])

        chart = ledger.get_chart_data(24, max_points=50)

        # step = 120 // 50 = 2
        assert len(chart.five_hour) == 60
        assert chart.five_hour[:3] == [0, 2, 4]
        assert len(chart.labels) == len(chart.seven_day) == 60

    def test_labels_are_local_clock_times(
        self, ledger: HistoryLedger, clock: FakeClock
    ) -> None:
        ledger.add_entry(1, 1)

        chart = ledger.get_chart_data(1)

        expected = datetime.fromtimestamp(clock.now / 1000).strftime("%H:%M")
        assert chart.labels == [expected]


@pytest.mark.unit
class TestCsvExport:
    def test_export(self) -> None:
        start = int(datetime(2025, 6, 1, 12, 0, tzinfo=UTC).timestamp() * 1000)
        clock = FakeClock(start)
        ledger = HistoryLedger(clock=clock)
        fill(ledger, clock, [(10.5, 20), (11, 21.25)])

        assert ledger.export_csv() == (
            "timestamp,five_hour,seven_day\n"
            "2025-06-01T12:00:00+00:00,10.5,20.0\n"
            "2025-06-01T12:01:00+00:00,11.0,21.25\n"
        )

    def test_export_period(self, ledger: HistoryLedger, clock: FakeClock) -> None:
        fill(ledger, clock, [(1, 1), (2, 2)], spacing_minutes=120)

        lines = ledger.export_csv(hours=1).splitlines()

        assert len(lines) == 2


@pytest.mark.unit
class TestPersistence:
    def test_survives_restart(self, tmp_path: Path, clock: FakeClock) -> None:
        path = tmp_path / "history.json"
        first = HistoryLedger(path=path, clock=clock)
        fill(first, clock, [(10, 20), (30, 40)])

        second = HistoryLedger(path=path, clock=clock)

        assert second.get_entries() == first.get_entries()
        assert not path.with_suffix(".json.tmp").exists()

    def test_load_trims_to_capacity(self, tmp_path: Path, clock: FakeClock) -> None:
        path = tmp_path / "history.json"
        path.write_bytes(
            orjson.dumps(
                [
                    {"timestamp": clock.now - i * 60_000, "five_hour": i, "seven_day": 0}
                    for i in range(5)
                ]
            )
        )

        ledger = HistoryLedger(max_entries=2, path=path, clock=clock)

        # Oldest first after sorting, newest kept
        assert [e.five_hour for e in ledger.get_entries()] == [1, 0]

    def test_corrupt_file_starts_empty(self, tmp_path: Path, clock: FakeClock) -> None:
        path = tmp_path / "history.json"
        path.write_text("not json")

        ledger = HistoryLedger(path=path, clock=clock)

        assert len(ledger) == 0
        assert ledger.add_entry(1, 1) is True
        assert orjson.loads(path.read_bytes())[0]["five_hour"] == 1
