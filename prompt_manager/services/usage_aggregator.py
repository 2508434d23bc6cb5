"""
Prompt Usage Aggregation
Daily call counts, success counts and average latency from execution logs
"""

from datetime import datetime, timedelta, timezone
from typing import List

import structlog

from prompt_manager.models.execution_log import ExecutionAggregate
from prompt_manager.services.stores import ExecutionLogStore

logger = structlog.get_logger(__name__)


def window_start(days: int, now: datetime = None) -> datetime:
    """UTC instant `days` days before now."""
    now = now or datetime.now(timezone.utc)
    return to_utc(now) - timedelta(days=days)


def to_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class UsageAggregator:
    """
    Summarizes execution logs into calendar-day buckets.

    Days are UTC calendar days. Average latency only counts logs that
    recorded a duration.
    """

    def __init__(self, executions: ExecutionLogStore):
        self.executions = executions

    def aggregate_usage(self, prompt_id: str, since: datetime) -> List[ExecutionAggregate]:
        """
        Aggregate logs of a prompt created at or after `since`.

        Args:
            prompt_id: Prompt whose logs are grouped
            since: Inclusive lower bound (naive values are read as UTC)

        Returns:
            One ExecutionAggregate per day with activity, most recent day first

        Example:
            aggregator = UsageAggregator(SQLExecutionLogStore(db))
            for bucket in aggregator.aggregate_usage(prompt.id, window_start(7)):
                print(bucket.day, bucket.total_calls, bucket.average_ms)
        """
        since_utc = to_utc(since)
        aggregates = self.executions.aggregate_usage(prompt_id, since_utc)

        logger.info(
            "prompt_usage_aggregated",
            prompt_id=prompt_id,
            since=since_utc.isoformat(),
            days=len(aggregates),
            total_calls=sum(bucket.total_calls for bucket in aggregates)
        )

        return aggregates
