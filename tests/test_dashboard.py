import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW, FakeRecords, make_record
from ai_attendance.dashboard import (
    CONNECTION_ERROR,
    DashboardAggregator,
    build_view,
    local_midnight,
    status_label,
    summarize,
)


@pytest.mark.parametrize("confidence,label", [
    (0.70, "Review"),
    (0.71, "Verified"),
    (0.0, "Review"),
    (1.0, "Verified"),
])
def test_status_label_threshold_is_strictly_greater(confidence, label):
    assert status_label(confidence) == label


def test_summarize_empty_window():
    stats = summarize([], FIXED_NOW)
    assert stats.total_attendance == 0
    assert stats.average_confidence == 0
    assert stats.active_users == 0


def test_summarize_counts_today_and_distinct_users():
    midnight = local_midnight(FIXED_NOW)
    records = [
        make_record("alice", 0.9, midnight + timedelta(minutes=5)),
        make_record("alice", 0.7, midnight),
        make_record("bob", 0.5, midnight - timedelta(seconds=1)),
    ]

    stats = summarize(records, FIXED_NOW)

    assert stats.total_attendance == 3
    assert stats.today_attendance == 2
    assert stats.active_users == 2
    assert stats.average_confidence == pytest.approx(0.7)


def test_build_view_drops_sentinel_and_caps_window():
    records = [make_record(f"u{i}", 0.8, FIXED_NOW - timedelta(minutes=i)) for i in range(35)]
    records.insert(0, make_record("system", 0.0, FIXED_NOW, is_initial_record=True))

    view = build_view(records, FIXED_NOW, window=30)

    assert view.stats.total_attendance == 30
    assert len(view.rows) == 30
    assert all(row.user_id != "system" for row in view.rows)
    assert view.stats.active_users <= view.stats.total_attendance
    assert view.loading is False


def test_rows_carry_display_name_fallback():
    record = make_record("jane_doe", 0.75, name="")
    [row] = build_view([record], FIXED_NOW).rows
    assert row.display_name == "jane_doe"
    assert row.status == "Verified"


def test_aggregator_recomputes_on_every_push():
    records = FakeRecords()
    aggregator = DashboardAggregator(records, clock=lambda: FIXED_NOW)
    assert aggregator.view.loading

    aggregator.start()
    assert aggregator.view.stats.total_attendance == 0
    assert not aggregator.view.loading

    records.insert(make_record("alice", 0.9))
    records.insert(make_record("bob", 0.6))
    records.push()

    view = aggregator.view
    assert view.stats.total_attendance == 2
    assert view.stats.active_users == 2
    assert [row.status for row in view.rows] == ["Verified", "Review"]


def test_view_is_replaced_not_mutated():
    records = FakeRecords()
    aggregator = DashboardAggregator(records, clock=lambda: FIXED_NOW)
    aggregator.start()
    before = aggregator.view

    records.insert(make_record("alice", 0.9))
    records.push()

    assert before.stats.total_attendance == 0
    assert aggregator.view is not before


def test_subscription_error_keeps_last_good_data():
    records = FakeRecords()
    records.insert(make_record("alice", 0.9))
    aggregator = DashboardAggregator(records, clock=lambda: FIXED_NOW)
    aggregator.start()

    records.break_connection()

    view = aggregator.view
    assert view.error == CONNECTION_ERROR
    assert view.stats.total_attendance == 1
    assert len(view.rows) == 1


def test_stop_tears_down_the_listener():
    records = FakeRecords()
    aggregator = DashboardAggregator(records)
    aggregator.start()
    [subscription] = records.subscriptions

    aggregator.stop()

    assert not subscription.active
    assert not aggregator.running


def test_running_reflects_a_subscription_ended_by_error():
    records = FakeRecords()
    aggregator = DashboardAggregator(records)
    aggregator.start()
    assert aggregator.running

    records.break_connection()

    assert not aggregator.running


def test_idle_listener_stops_and_restarts_on_demand():
    records = FakeRecords()
    aggregator = DashboardAggregator(records, idle_timeout=0.05)
    aggregator.start()
    [subscription] = records.subscriptions
    assert subscription.keep_alive()

    time.sleep(0.1)
    assert not subscription.keep_alive()

    aggregator.view
    assert subscription.keep_alive()


def test_without_idle_timeout_the_listener_never_idles():
    records = FakeRecords()
    aggregator = DashboardAggregator(records)
    aggregator.start()
    [subscription] = records.subscriptions

    time.sleep(0.02)

    assert subscription.keep_alive()


def test_start_resubscribes_after_the_listener_ended():
    records = FakeRecords()
    aggregator = DashboardAggregator(records)
    aggregator.start()
    records.subscriptions[0].active = False

    aggregator.start()

    assert len(records.subscriptions) == 2
    assert aggregator.running


def test_naive_timestamps_are_read_as_utc():
    naive = datetime(2026, 10, 19, 15, 0)
    stats = summarize([make_record("a", 0.9, naive)], datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc))
    assert stats.total_attendance == 1
