"""
Data models for storage layer.

Defines the key/value settings row used as the quota ledger's backing record.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class SettingRecord:
    """A single row of the settings table.

    Values are always stored as text; interpretation (e.g. as an integer
    counter) is left to the caller.
    """
    key: str
    value: str
    organisation_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
