"""Abstract interfaces for the collaborators the pipeline talks to."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Dict, Any, Optional, Sequence, Set, Tuple


class StorageReader(ABC):
    """Read side of the transactions sheet"""

    @abstractmethod
    def get_existing_transaction_ids(self) -> Set[str]:
        """Return the transaction ids already stored (blank ids excluded)"""
        pass

    @abstractmethod
    def get_latest_stored_date(self) -> Optional[date]:
        """Return the date of the first data row, or None if there is none"""
        pass

    @abstractmethod
    def has_header(self) -> bool:
        """Return True if the sheet already carries a header row"""
        pass

    @abstractmethod
    def get_header(self) -> List[str]:
        """Return the stored header row, or an empty list if there is none"""
        pass


class StorageWriter(ABC):
    """Write side of the transactions sheet"""

    @abstractmethod
    def append_rows(self, block: Sequence[Sequence[Any]], clear_first: bool = False) -> int:
        """Append a 2D block below the existing rows.

        An empty block is a no-op. With clear_first, every row except the
        header is removed before appending.

        Returns:
            Number of rows written
        """
        pass

    @abstractmethod
    def reset(self) -> None:
        """Remove every row except the header"""
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Sort data rows by date, most recent first"""
        pass


class AggregationClient(ABC):
    """Source of raw account and transaction records"""

    @abstractmethod
    def fetch_transactions(
        self,
        start_date: date,
        end_date: date,
        access_token: str
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Return (accounts, transactions) for the date range"""
        pass


class NotificationSink(ABC):
    """Receives per-run failure reports"""

    @abstractmethod
    def notify(self, owner: str, account: str, operation: str, error: Any) -> None:
        """Report a failed run. Must not raise."""
        pass
