"""Filtering of pending and previously stored transactions."""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from ..models.core import RawTransaction


logger = logging.getLogger(__name__)


class DedupFilter:
    """Keeps transactions that are settled and not yet stored.

    The set of existing ids is taken once, at the start of a run, and is
    never updated while the run is in progress.
    """

    def __init__(self, existing_ids: Iterable[str]):
        """
        Initialize the filter

        Args:
            existing_ids: Transaction ids already present in storage
        """
        self.existing_ids: Set[str] = set(existing_ids)

    def is_accepted(self, transaction: RawTransaction) -> bool:
        """Return True if the transaction should be persisted"""
        if transaction.pending:
            return False
        return transaction.transaction_id not in self.existing_ids

    def filter(self, transactions: Iterable[RawTransaction]) -> List[RawTransaction]:
        """
        Drop pending and already stored transactions, preserving order

        Args:
            transactions: Transactions from the API

        Returns:
            Accepted transactions in input order
        """
        accepted, _ = self.filter_with_stats(transactions)
        return accepted

    def filter_with_stats(
        self,
        transactions: Iterable[RawTransaction]
    ) -> Tuple[List[RawTransaction], Dict[str, int]]:
        """
        Filter transactions and report what was dropped

        Returns:
            Tuple of (accepted_transactions, filter_stats)
        """
        accepted = []
        total = 0
        pending_dropped = 0
        existing_dropped = 0

        for transaction in transactions:
            total += 1
            if transaction.pending:
                pending_dropped += 1
                continue
            if transaction.transaction_id in self.existing_ids:
                existing_dropped += 1
                continue
            accepted.append(transaction)

        stats = {
            'total_input_transactions': total,
            'pending_dropped': pending_dropped,
            'existing_dropped': existing_dropped,
            'accepted_transactions': len(accepted)
        }
        logger.debug(
            f"Filtered {total} transactions: {len(accepted)} accepted, "
            f"{pending_dropped} pending, {existing_dropped} already stored"
        )
        return accepted, stats
