"""
Audit ledger — append-only run history.

Every provisioning run writes one entry to an NDJSON (newline-delimited
JSON) file: what was requested, which steps ran, and how it ended.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    operation: str = "provision"     # provision, smoke

    # What was requested
    variant: str = ""
    product_version: str = ""
    r_versions: list[str] = Field(default_factory=list)
    python_versions: list[str] = Field(default_factory=list)
    quarto_versions: list[str] = Field(default_factory=list)

    # Results
    status: str = ""                 # ok, degraded, failed
    steps: dict[str, str] = Field(default_factory=dict)
    failed_step: str | None = None
    error: str | None = None
    duration_ms: int = 0

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> bool:
        """Append an audit entry to the ledger.

        Failures are logged, never raised: the ledger must not decide
        the outcome of a run.

        Returns:
            Whether the entry was written.
        """
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)
            return False

        logger.debug("Audit entry written: %s/%s", entry.operation, entry.run_id)
        return True

    def read_all(self) -> list[AuditEntry]:
        """Read all entries from the ledger.

        Returns:
            List of audit entries, oldest first.
        """
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20, status: str | None = None) -> list[AuditEntry]:
        """Read the most recent N entries, optionally only those with ``status``."""
        entries = self.read_all()
        if status:
            entries = [e for e in entries if e.status == status]
        return entries[-n:] if n > 0 else []
