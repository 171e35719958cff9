"""Row mapper for turning API transactions into sheet rows."""

import logging
from typing import Dict, Iterable, List

from ..exceptions import AccountLookupError, SchemaError
from ..models.core import SCHEMA_FIELDS, Account, RawTransaction, Record


logger = logging.getLogger(__name__)


class RowMapper:
    """Maps accepted transactions onto the fixed sheet schema.

    Account fields are copied into every row since the account catalog is
    not stored separately.

    Example:
        mapper = RowMapper(owner="Alice", account="Chase")
        index = build_account_index(accounts)

        record = mapper.map(transaction, index)
        records = mapper.map_batch(transactions, index)
    """

    DEFAULT_ROLLUP = "Rollup"

    def __init__(self, owner: str, account: str, rollup_label: str = DEFAULT_ROLLUP):
        """Initialize the row mapper.

        Args:
            owner: Whose data is being imported (Owner column).
            account: Label of the imported account (Account column).
            rollup_label: Constant written to the Rollup column before
                         rules refine it.
        """
        self.owner = owner
        self.account = account
        self.rollup_label = rollup_label

    def map(self, transaction: RawTransaction, account_index: Dict[str, Account]) -> Record:
        """Build the sheet row for one transaction.

        Args:
            transaction: An accepted (settled, new) transaction.
            account_index: Accounts keyed by account id.

        Returns:
            Record with SCHEMA_FIELDS in column order.

        Raises:
            AccountLookupError: If the transaction's account is not in the index.
            SchemaError: If the transaction has no location sub-record.
        """
        account = account_index.get(transaction.account_id)
        if account is None:
            raise AccountLookupError(
                f"Unknown account id: {transaction.account_id}",
                owner=self.owner,
                account=self.account,
                transaction_id=transaction.transaction_id,
                field="account_id"
            )

        location = transaction.location
        if location is None:
            raise SchemaError(
                "Missing location sub-record",
                owner=self.owner,
                account=self.account,
                transaction_id=transaction.transaction_id,
                field="location"
            )

        merchant_name = (
            transaction.merchant_name
            if transaction.merchant_name is not None
            else transaction.name
        )
        categories = [
            transaction.category[i] if len(transaction.category) > i and transaction.category[i] else ""
            for i in range(3)
        ]

        values = {
            "Rollup": self.rollup_label,
            "Date": transaction.date,
            "Name": transaction.name,
            "Marchant Name": merchant_name,
            "Payment Channel": transaction.payment_channel,
            "ISO Currency Code": transaction.iso_currency_code,
            "Plaid Category 1": categories[0],
            "Plaid Category 2": categories[1],
            "Plaid Category 3": categories[2],
            "Category ID": transaction.category_id,
            "Transaction Type": transaction.transaction_type,
            "Transaction ID": transaction.transaction_id,
            "Owner": self.owner,
            "Account": self.account,
            "Mask": account.mask,
            "Account Name": account.name,
            "Account Type": account.type,
            "Account Subtype": account.subtype,
            "Address": location.address,
            "City": location.city,
            "Region": location.region,
            "Postal Code": location.postal_code,
            "Country": location.country,
            "Store Number": location.store_number,
            "Category": categories[0],
            "Amount": transaction.amount,
        }
        return Record(values, SCHEMA_FIELDS)

    def map_batch(
        self,
        transactions: Iterable[RawTransaction],
        account_index: Dict[str, Account]
    ) -> List[Record]:
        """Map multiple transactions, preserving order.

        The first failing transaction aborts the whole batch.
        """
        records = [self.map(txn, account_index) for txn in transactions]
        logger.debug(f"Mapped {len(records)} transactions for {self.owner}/{self.account}")
        return records
