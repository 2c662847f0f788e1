"""Decision statistics in JSON (<data dir>/stats.json)."""

import asyncio
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..models import DecisionKind
from ..models import Stats
from ..paths import get_stats_path
from .files import write_atomic

logger = logging.getLogger(__name__)

_COUNTER_FIELDS: dict[str, str] = {
    "ALLOWED": "allowed",
    "APPROVED": "approved",
    "REJECTED": "rejected",
    "BLOCKED": "blocked",
}


class StatsTracker:
    """
    Counter store. Implements the StatsSink protocol.

    Increments are serialized through an asyncio lock so concurrent
    load/modify/save cycles never lose an update.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or get_stats_path()
        self._lock = asyncio.Lock()

    async def load(self) -> Stats:
        """Load stats, initializing a zeroed file when none exists."""
        if not self.path.exists():
            stats = Stats()
            await self.save(stats)
            return stats

        try:
            return Stats.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Stats file {self.path} is corrupt, starting from zero: {e}")
            return Stats()

    async def save(self, stats: Stats) -> None:
        write_atomic(self.path, json.dumps(stats.model_dump(mode="json"), indent=2))

    async def increment(self, decision: DecisionKind, decision_time_ms: int) -> None:
        """Count one decision and fold its duration into the rolling average."""
        async with self._lock:
            stats = await self.load()
            stats.total_calls += 1
            counter = _COUNTER_FIELDS[decision]
            setattr(stats, counter, getattr(stats, counter) + 1)

            total_time = stats.avg_decision_time_ms * (stats.total_calls - 1) + decision_time_ms
            stats.avg_decision_time_ms = round(total_time / stats.total_calls)

            await self.save(stats)

    async def reset(self) -> Stats:
        async with self._lock:
            stats = Stats()
            await self.save(stats)
        logger.info("Stats reset")
        return stats
