"""
Tests for daily usage aggregation over execution logs

Uses fixed timestamps so calendar-day buckets are deterministic.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from prompt_manager.models.execution_log import PromptExecutionLog
from prompt_manager.services.sql_stores import SQLExecutionLogStore
from prompt_manager.services.usage_aggregator import UsageAggregator, window_start, to_utc

UTC = timezone.utc


@pytest.fixture
def versioned_prompt(service):
    prompt = service.create_prompt("usage_prompt")
    version = service.create_prompt_version(prompt.id, "Hello {{name}}", activate=True)
    return prompt, version


def _log(db, prompt, version, created_at, status="success", duration_ms=None):
    db.add(PromptExecutionLog(
        prompt_id=prompt.id,
        prompt_version_id=version.id,
        status=status,
        duration_ms=duration_ms,
        created_at=created_at,
    ))


class TestWindow:

    def test_window_start_subtracts_days(self):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
        assert window_start(7, now=now) == datetime(2026, 10, 12, 12, 0, tzinfo=UTC)

    def test_naive_values_are_read_as_utc(self):
        assert to_utc(datetime(2026, 10, 19, 8, 0)) == datetime(2026, 10, 19, 8, 0, tzinfo=UTC)

    def test_aware_values_are_converted(self):
        cest = timezone(timedelta(hours=2))
        assert to_utc(datetime(2026, 10, 19, 1, 0, tzinfo=cest)) == datetime(2026, 10, 18, 23, 0, tzinfo=UTC)


class TestUsageAggregator:

    def test_same_day_logs_form_one_bucket(self, db, versioned_prompt):
        prompt, version = versioned_prompt
        for hour, status, duration in ((9, "success", 100), (10, "success", 110), (11, "failed", 120)):
            _log(db, prompt, version, datetime(2026, 10, 18, hour, 0, tzinfo=UTC),
                 status=status, duration_ms=duration)
        db.commit()

        aggregator = UsageAggregator(SQLExecutionLogStore(db))
        buckets = aggregator.aggregate_usage(prompt.id, datetime(2026, 10, 11, tzinfo=UTC))

        assert len(buckets) == 1
        assert buckets[0].day == date(2026, 10, 18)
        assert buckets[0].total_calls == 3
        assert buckets[0].success_calls == 2
        assert buckets[0].average_ms == pytest.approx(110.0)

    def test_failed_calls_and_missing_durations(self, db, versioned_prompt):
        prompt, version = versioned_prompt
        day = datetime(2026, 10, 17, 8, 0, tzinfo=UTC)
        _log(db, prompt, version, day, status="success", duration_ms=200)
        _log(db, prompt, version, day + timedelta(minutes=1), status="failed", duration_ms=None)
        _log(db, prompt, version, day + timedelta(minutes=2), status="failed", duration_ms=400)
        db.commit()

        buckets = UsageAggregator(SQLExecutionLogStore(db)).aggregate_usage(
            prompt.id, datetime(2026, 10, 10, tzinfo=UTC)
        )

        assert buckets[0].total_calls == 3
        assert buckets[0].success_calls == 1
        assert buckets[0].average_ms == pytest.approx(300.0)

    def test_day_without_durations_averages_zero(self, db, versioned_prompt):
        prompt, version = versioned_prompt
        _log(db, prompt, version, datetime(2026, 10, 16, 8, 0, tzinfo=UTC))
        db.commit()

        buckets = UsageAggregator(SQLExecutionLogStore(db)).aggregate_usage(
            prompt.id, datetime(2026, 10, 10, tzinfo=UTC)
        )

        assert buckets[0].average_ms == 0.0

    def test_buckets_most_recent_first_and_window_applied(self, db, versioned_prompt):
        prompt, version = versioned_prompt
        _log(db, prompt, version, datetime(2026, 10, 1, 8, 0, tzinfo=UTC), duration_ms=10)
        _log(db, prompt, version, datetime(2026, 10, 15, 8, 0, tzinfo=UTC), duration_ms=20)
        _log(db, prompt, version, datetime(2026, 10, 18, 8, 0, tzinfo=UTC), duration_ms=30)
        db.commit()

        buckets = UsageAggregator(SQLExecutionLogStore(db)).aggregate_usage(
            prompt.id, datetime(2026, 10, 12, tzinfo=UTC)
        )

        assert [b.day for b in buckets] == [date(2026, 10, 18), date(2026, 10, 15)]

    def test_other_prompts_are_ignored(self, db, service, versioned_prompt):
        prompt, version = versioned_prompt
        other = service.create_prompt("other_prompt")
        other_version = service.create_prompt_version(other.id, "Bye")
        _log(db, other, other_version, datetime(2026, 10, 18, 8, 0, tzinfo=UTC), duration_ms=5)
        db.commit()

        buckets = UsageAggregator(SQLExecutionLogStore(db)).aggregate_usage(
            prompt.id, datetime(2026, 10, 1, tzinfo=UTC)
        )

        assert buckets == []
