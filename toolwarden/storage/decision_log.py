"""Audit trail in JSON Lines format (<data dir>/decisions.jsonl)."""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..models import DecisionRecord
from ..paths import get_decisions_path
from .files import append_line

logger = logging.getLogger(__name__)


class DecisionLog:
    """Append-only decision log. Implements the AuditSink protocol."""

    def __init__(self, path: Path | None = None):
        self.path = path or get_decisions_path()

    async def append(self, record: DecisionRecord) -> None:
        """Append one record as a JSON line.

        Arguments that are not JSON-serializable are stored as strings.
        """
        line = json.dumps(record.model_dump(exclude_none=True), default=str, ensure_ascii=False)
        append_line(self.path, line)
        logger.debug(f"Decision logged: {record.decision} {record.module}.{record.method}")

    async def read_all(self) -> list[DecisionRecord]:
        """Read every record, skipping lines that do not parse."""
        if not self.path.exists():
            return []

        records: list[DecisionRecord] = []
        with self.path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(DecisionRecord.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning(f"Skipping corrupt line {line_num} in {self.path}: {e}")
        return records

    async def read_last(self, n: int) -> list[DecisionRecord]:
        """Read the last ``n`` records (oldest first)."""
        if n <= 0:
            return []
        records = await self.read_all()
        return records[-n:]
