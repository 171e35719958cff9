"""CSV-backed transactions sheet."""

import csv
import logging
import os
import tempfile
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Set

from ..exceptions import WriteError
from ..models.core import (
    DATE_FIELD,
    SCHEMA_FIELDS,
    TRANSACTION_ID_FIELD,
    parse_iso_date,
)
from ..pipeline.base import StorageReader, StorageWriter


logger = logging.getLogger(__name__)


class CSVSheetStore(StorageReader, StorageWriter):
    """A named table kept in a CSV file.

    The first row is the header; data rows follow, most recent date first
    once `cleanup` has run. Columns are located by header name and fall
    back to their schema position when the sheet has no header yet.
    """

    def __init__(self, sheet_path: str, headers: Sequence[str] = SCHEMA_FIELDS):
        """
        Args:
            sheet_path: Path of the CSV file
            headers: Header row written by `initialize`
        """
        self.sheet_path = sheet_path
        self.headers = list(headers)

    # Reading ------------------------------------------------------------

    def _read_rows(self) -> List[List[str]]:
        if not os.path.exists(self.sheet_path):
            return []
        with open(self.sheet_path, 'r', newline='', encoding='utf-8') as csvfile:
            return [row for row in csv.reader(csvfile)]

    def _column_index(self, rows: List[List[str]], name: str) -> int:
        if rows and name in rows[0]:
            return rows[0].index(name)
        return SCHEMA_FIELDS.index(name)

    def has_header(self) -> bool:
        rows = self._read_rows()
        return bool(rows) and any(cell.strip() for cell in rows[0])

    def get_header(self) -> List[str]:
        rows = self._read_rows()
        return list(rows[0]) if rows else []

    def row_count(self) -> int:
        """Number of data rows (header excluded)"""
        rows = self._read_rows()
        return max(len(rows) - 1, 0)

    def get_existing_transaction_ids(self) -> Set[str]:
        rows = self._read_rows()
        if len(rows) < 2:
            return set()
        column = self._column_index(rows, TRANSACTION_ID_FIELD)
        ids = set()
        for row in rows[1:]:
            if column < len(row) and row[column].strip():
                ids.add(row[column].strip())
        return ids

    def get_latest_stored_date(self) -> Optional[date]:
        rows = self._read_rows()
        if len(rows) < 2:
            return None
        column = self._column_index(rows, DATE_FIELD)
        first_row = rows[1]
        if column >= len(first_row) or not first_row[column].strip():
            return None
        return parse_iso_date(first_row[column], field_name=DATE_FIELD)

    # Writing ------------------------------------------------------------

    @staticmethod
    def _format_value(value: Any) -> str:
        if value is None:
            return ''
        if isinstance(value, datetime):
            return value.strftime('%Y-%m-%d')
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        return str(value)

    def _ends_without_newline(self) -> bool:
        """True if the sheet has content whose last line is unterminated"""
        if not os.path.exists(self.sheet_path) or os.path.getsize(self.sheet_path) == 0:
            return False
        with open(self.sheet_path, 'rb') as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) not in (b"\n", b"\r")

    def _rewrite(self, rows: List[List[Any]]) -> None:
        """Replace the sheet contents in one step"""
        directory = os.path.dirname(os.path.abspath(self.sheet_path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', newline='', encoding='utf-8') as csvfile:
                    writer = csv.writer(csvfile)
                    for row in rows:
                        writer.writerow([self._format_value(v) for v in row])
                os.replace(temp_path, self.sheet_path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise
        except (OSError, csv.Error) as e:
            raise WriteError(f"Failed to write sheet {self.sheet_path}: {e}")

    def initialize(self) -> bool:
        """Create the sheet with its header row if it has none.

        Returns:
            True if a header was written, False if one already existed
        """
        if self.has_header():
            return False
        self._rewrite([self.headers])
        logger.info(f"Created sheet {self.sheet_path} with {len(self.headers)} columns")
        return True

    def append_rows(self, block: Sequence[Sequence[Any]], clear_first: bool = False) -> int:
        if not block:
            logger.info("No data to write")
            return 0

        if clear_first:
            rows = self._read_rows()
            header = rows[:1]
            self._rewrite(header + [list(row) for row in block])
        else:
            try:
                directory = os.path.dirname(os.path.abspath(self.sheet_path))
                os.makedirs(directory, exist_ok=True)
                missing_newline = self._ends_without_newline()
                with open(self.sheet_path, 'a', newline='', encoding='utf-8') as csvfile:
                    if missing_newline:
                        csvfile.write('\r\n')
                    writer = csv.writer(csvfile)
                    writer.writerows(
                        [self._format_value(v) for v in row] for row in block
                    )
            except (OSError, csv.Error) as e:
                raise WriteError(f"Failed to append to sheet {self.sheet_path}: {e}")

        logger.info(f"Wrote {len(block)} rows to {self.sheet_path}")
        return len(block)

    def reset(self) -> None:
        rows = self._read_rows()
        self._rewrite(rows[:1])
        logger.info(f"Cleared {max(len(rows) - 1, 0)} rows from {self.sheet_path}")

    def cleanup(self) -> None:
        rows = self._read_rows()
        if len(rows) < 3:
            return
        column = self._column_index(rows, DATE_FIELD)

        def date_key(row: List[str]) -> str:
            return row[column] if column < len(row) else ''

        data_rows = sorted(rows[1:], key=date_key, reverse=True)
        self._rewrite(rows[:1] + data_rows)
        logger.info(f"{self.sheet_path} has been cleaned up")
