"""
Shared daily call budget for the server-provided API key.

The counter lives in the settings store under a fixed key. Consumption is
a read followed by a write, not a single atomic statement: two concurrent
requests can read the same value and both be admitted for the last slot.
Nothing here resets or decrements the counter; resets are an operational
concern outside this package.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .errors import LedgerUpdateFailed
from cube_ai_gateway.storage.repository import SettingsRepository

logger = logging.getLogger(__name__)

GEMINI_CALLS_KEY = "gemini-ai-calls"


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a single check-and-consume.

    ``used`` is the count before this request was admitted.
    """
    allowed: bool
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        consumed = self.used + 1 if self.allowed else self.used
        return max(self.limit - consumed, 0)


class QuotaLedger:
    """Tracks and enforces the shared daily call budget."""

    def __init__(
        self,
        repository: SettingsRepository,
        limit: int,
        key: str = GEMINI_CALLS_KEY,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Args:
            repository: Settings store holding the counter row
            limit: Maximum calls admitted before requests are refused
            key: Settings key of the counter row
            clock: Source of the ``updated_at`` timestamp
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.repository = repository
        self.limit = limit
        self.key = key
        self._clock = clock

    def current_usage(self) -> int:
        """Read the counter without modifying it.

        Returns:
            Calls recorded so far; 0 if the row has never been written
        """
        record = self.repository.get_setting(self.key)
        if record is None:
            return 0
        return _parse_counter(record.value, self.key)

    def check_and_consume(self, tenant_id: int) -> QuotaDecision:
        """Admit one call against the budget if any remains.

        Args:
            tenant_id: Organisation that owns the counter row on first write

        Returns:
            QuotaDecision; when ``allowed`` is False nothing was written

        Raises:
            LedgerUpdateFailed: If the incremented value could not be stored
        """
        used = self.current_usage()

        if used >= self.limit:
            logger.info("Shared key quota exhausted (%d/%d)", used, self.limit)
            return QuotaDecision(allowed=False, used=used, limit=self.limit)

        try:
            self.repository.upsert_setting(
                self.key,
                str(used + 1),
                organisation_id=tenant_id,
                now=self._clock()
            )
        except sqlite3.Error as e:
            logger.error("Failed to increment usage counter: %s", e)
            raise LedgerUpdateFailed(str(e)) from e

        logger.debug("Shared key call admitted (%d/%d)", used + 1, self.limit)
        return QuotaDecision(allowed=True, used=used, limit=self.limit)


def _parse_counter(value: Optional[str], key: str) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        logger.warning("Non-integer value %r stored for %s; treating as 0", value, key)
        return 0
    if count < 0:
        logger.warning("Negative value %d stored for %s; treating as 0", count, key)
        return 0
    return count
