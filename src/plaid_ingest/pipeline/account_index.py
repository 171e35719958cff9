"""Account lookup for resolving the account of each transaction."""

import logging
from typing import Dict, Iterable

from ..models.core import Account


logger = logging.getLogger(__name__)


def build_account_index(accounts: Iterable[Account]) -> Dict[str, Account]:
    """Index accounts by account id.

    Transactions only carry an account id, so the accounts returned with
    them are needed to fill in mask, name and type. A repeated id keeps
    the last account seen.

    Args:
        accounts: Accounts in API order

    Returns:
        Dictionary mapping account id to Account
    """
    index: Dict[str, Account] = {}
    for account in accounts:
        if account.account_id in index:
            logger.debug(f"Duplicate account id {account.account_id}, keeping last occurrence")
        index[account.account_id] = account
    return index
