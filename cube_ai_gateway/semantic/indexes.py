"""
Index metadata for tables referenced by a query plan.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from cube_ai_gateway.storage.db import DEFAULT_DB_PATH, get_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexInfo:
    """An existing index on a table."""
    table_name: str
    index_name: str
    columns: List[str] = field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False


class IndexMetadataProvider:
    """Lists existing indexes for a set of tables."""

    def list_indexes(self, table_names: Iterable[str]) -> List[IndexInfo]:
        raise NotImplementedError


class SqliteIndexMetadataProvider(IndexMetadataProvider):
    """Reads index definitions from SQLite's catalog pragmas."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def list_indexes(self, table_names: Iterable[str]) -> List[IndexInfo]:
        """Fetch indexes for the given tables.

        Unknown tables simply contribute no rows.

        Args:
            table_names: Unqualified table names

        Returns:
            Indexes ordered by table (as given) then index name
        """
        names = list(table_names)
        if not names:
            return []

        conn = get_connection(self.db_path)
        try:
            indexes = []
            for table in names:
                # Pragmas don't accept bound parameters; quote the identifier
                quoted = '"' + table.replace('"', '""') + '"'
                index_rows = conn.execute(f"PRAGMA index_list({quoted})").fetchall()
                # index_list columns: seq, name, unique, origin, partial
                for row in sorted(index_rows, key=lambda r: r[1]):
                    index_name = row[1]
                    quoted_index = '"' + index_name.replace('"', '""') + '"'
                    column_rows = conn.execute(f"PRAGMA index_info({quoted_index})").fetchall()
                    indexes.append(IndexInfo(
                        table_name=table,
                        index_name=index_name,
                        # index_info columns: seqno, cid, name (NULL for expressions)
                        columns=[c[2] or "<expression>" for c in sorted(column_rows, key=lambda c: c[0])],
                        is_unique=bool(row[2]),
                        is_primary=row[3] == "pk"
                    ))
            logger.debug("Found %d indexes across %d tables", len(indexes), len(names))
            return indexes
        finally:
            conn.close()


def format_index_info(indexes: List[IndexInfo]) -> str:
    """Render indexes as one line per index for the analysis prompt."""
    if not indexes:
        return "No indexes found on the referenced tables."

    lines = []
    for index in indexes:
        flags = []
        if index.is_primary:
            flags.append("PRIMARY KEY")
        elif index.is_unique:
            flags.append("UNIQUE")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        lines.append(f"- {index.table_name}: {index.index_name} ({', '.join(index.columns)}){suffix}")
    return "\n".join(lines)
