"""Exception taxonomy for the transaction ingest pipeline."""

from typing import Optional


class IngestError(Exception):
    """Ingest failure with run context.

    Carries the owner/account pair of the run and, where known, the
    transaction and field that caused the failure.
    """

    def __init__(
        self,
        message: str,
        owner: Optional[str] = None,
        account: Optional[str] = None,
        transaction_id: Optional[str] = None,
        field: Optional[str] = None
    ):
        """Create ingest error with optional context.

        Args:
            message: Error description
            owner: Owner label of the run
            account: Account label of the run
            transaction_id: Transaction that caused the error
            field: Field name that caused the error
        """
        self.message = message
        self.owner = owner
        self.account = account
        self.transaction_id = transaction_id
        self.field = field

        context_parts = []
        if owner:
            context_parts.append(f"owner: {owner}")
        if account:
            context_parts.append(f"account: {account}")
        if transaction_id:
            context_parts.append(f"transaction: {transaction_id}")
        if field:
            context_parts.append(f"field: {field}")

        context = f" ({', '.join(context_parts)})" if context_parts else ""
        super().__init__(f"{message}{context}")


class SchemaError(IngestError):
    """A record is missing a required field or has an unexpected shape"""


class AccountLookupError(IngestError, LookupError):
    """A transaction references an account absent from the accounts list"""


class UpstreamError(IngestError):
    """The aggregation API call failed (network, auth, rate limit)"""


class WriteError(IngestError):
    """The storage writer failed to append or rewrite rows"""


class ConfigurationError(IngestError):
    """Configuration is invalid or credentials are missing"""
