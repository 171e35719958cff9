"""Core data models for the transaction ingest pipeline."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Dict, Any, Optional, Sequence, Tuple

from ..exceptions import SchemaError


DATE_FORMAT = "%Y-%m-%d"

# Column order of the transactions sheet. "Marchant Name" is spelled the way
# existing sheets spell it.
SCHEMA_FIELDS: Tuple[str, ...] = (
    "Rollup",
    "Date",
    "Name",
    "Marchant Name",
    "Payment Channel",
    "ISO Currency Code",
    "Plaid Category 1",
    "Plaid Category 2",
    "Plaid Category 3",
    "Category ID",
    "Transaction Type",
    "Transaction ID",
    "Owner",
    "Account",
    "Mask",
    "Account Name",
    "Account Type",
    "Account Subtype",
    "Address",
    "City",
    "Region",
    "Postal Code",
    "Country",
    "Store Number",
    "Category",
    "Amount",
)

DATE_FIELD = "Date"
TRANSACTION_ID_FIELD = "Transaction ID"


def parse_iso_date(value: Any, field_name: str = "date") -> date:
    """Parse a YYYY-MM-DD value into a date.

    Args:
        value: String, date or datetime value
        field_name: Field name used in the error message

    Returns:
        Parsed date

    Raises:
        SchemaError: If the value is empty or not in YYYY-MM-DD format
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise SchemaError("Missing date value", field=field_name)
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError:
        raise SchemaError(f"Invalid date format: {value}", field=field_name)


def _require(data: Dict[str, Any], key: str, transaction_id: Optional[str] = None) -> Any:
    if key not in data or data[key] is None:
        raise SchemaError(
            f"Missing required field: {key}",
            transaction_id=transaction_id,
            field=key
        )
    return data[key]


@dataclass(frozen=True)
class Account:
    """Account record returned alongside transactions.

    Attributes:
        account_id: Unique identifier for the account
        name: Display name of the account
        mask: Last digits of the account number
        type: Account type (e.g., "depository", "credit")
        subtype: Account subtype (e.g., "checking")
        official_name: Institution's official account name
    """
    account_id: str
    name: Optional[str] = None
    mask: Optional[str] = None
    type: Optional[str] = None
    subtype: Optional[str] = None
    official_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        if not isinstance(data, dict):
            raise SchemaError("Account record must be a dictionary")
        return cls(
            account_id=str(_require(data, "account_id")),
            name=data.get("name"),
            mask=data.get("mask"),
            type=data.get("type"),
            subtype=data.get("subtype"),
            official_name=data.get("official_name"),
        )


@dataclass(frozen=True)
class Location:
    """Location sub-record of a transaction"""
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    store_number: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(
            address=data.get("address"),
            city=data.get("city"),
            region=data.get("region"),
            postal_code=data.get("postal_code"),
            country=data.get("country"),
            store_number=data.get("store_number"),
        )


@dataclass(frozen=True)
class RawTransaction:
    """Transaction as reported by the aggregation API.

    Attributes:
        transaction_id: Identifier, stable across re-fetches
        account_id: Identifier of the owning account
        date: Posting date
        name: General name field
        amount: Transaction amount
        merchant_name: Merchant name, if the API resolved one
        pending: True until the transaction settles
        category: Category path, 0 to 3 labels
        location: Location sub-record; None when the feed omitted it
    """
    transaction_id: str
    account_id: str
    date: date
    name: Optional[str]
    amount: Decimal
    merchant_name: Optional[str] = None
    iso_currency_code: Optional[str] = None
    pending: bool = False
    category: Tuple[str, ...] = ()
    category_id: Optional[str] = None
    payment_channel: Optional[str] = None
    transaction_type: Optional[str] = None
    location: Optional[Location] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawTransaction":
        """Build a transaction from an API payload entry.

        Raises:
            SchemaError: If a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise SchemaError("Transaction record must be a dictionary")

        transaction_id = str(_require(data, "transaction_id"))
        account_id = str(_require(data, "account_id", transaction_id))

        try:
            txn_date = parse_iso_date(_require(data, "date", transaction_id))
        except SchemaError as e:
            raise SchemaError(e.message, transaction_id=transaction_id, field="date")

        raw_amount = _require(data, "amount", transaction_id)
        try:
            amount = Decimal(str(raw_amount))
        except InvalidOperation:
            raise SchemaError(
                f"Invalid amount format: {raw_amount}",
                transaction_id=transaction_id,
                field="amount"
            )

        location_data = data.get("location")
        if location_data is not None and not isinstance(location_data, dict):
            raise SchemaError(
                "Location must be a dictionary",
                transaction_id=transaction_id,
                field="location"
            )

        return cls(
            transaction_id=transaction_id,
            account_id=account_id,
            date=txn_date,
            name=data.get("name"),
            amount=amount,
            merchant_name=data.get("merchant_name"),
            iso_currency_code=data.get("iso_currency_code"),
            pending=bool(data.get("pending", False)),
            category=tuple(data.get("category") or ()),
            category_id=data.get("category_id"),
            payment_channel=data.get("payment_channel"),
            transaction_type=data.get("transaction_type"),
            location=Location.from_dict(location_data) if location_data is not None else None,
        )


class Record:
    """Immutable row with an explicit, ordered field list.

    The values must cover exactly the declared fields; construction fails
    otherwise. Rules derive new records with `update` and `extend`.
    """

    __slots__ = ("_fields", "_values")

    def __init__(self, values: Dict[str, Any], fields: Sequence[str] = SCHEMA_FIELDS):
        fields = tuple(fields)
        if len(set(fields)) != len(fields):
            raise SchemaError("Record fields must be unique")
        missing = [f for f in fields if f not in values]
        unexpected = [k for k in values if k not in fields]
        if missing:
            raise SchemaError(f"Record missing fields: {', '.join(missing)}")
        if unexpected:
            raise SchemaError(f"Record has undeclared fields: {', '.join(unexpected)}")
        self._fields = fields
        self._values = {name: values[name] for name in fields}

    @property
    def fields(self) -> Tuple[str, ...]:
        return self._fields

    def values(self) -> List[Any]:
        """Values in field order"""
        return [self._values[name] for name in self._fields]

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def update(self, updates: Dict[str, Any]) -> "Record":
        """Return a copy with existing fields updated"""
        unknown = [k for k in updates if k not in self._values]
        if unknown:
            raise SchemaError(f"Cannot update undeclared fields: {', '.join(unknown)}")
        values = dict(self._values)
        values.update(updates)
        return Record(values, self._fields)

    def extend(self, name: str, value: Any = "") -> "Record":
        """Return a copy with a new field appended"""
        if name in self._values:
            raise SchemaError(f"Field already present: {name}")
        values = dict(self._values)
        values[name] = value
        return Record(values, self._fields + (name,))

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._fields == other._fields and self._values == other._values

    def __repr__(self) -> str:
        return f"Record({self._values!r})"


@dataclass
class PlaidSettings:
    """Credentials and environment for the aggregation API"""
    env: str = "sandbox"
    client_id: Optional[str] = None
    secret: Optional[str] = None
    page_size: int = 500
    timeout: float = 30.0


@dataclass
class NotificationSettings:
    """SMTP settings for failure notifications.

    No email address means notifications are disabled.
    """
    email: Optional[str] = None
    smtp_host: str = "localhost"
    smtp_port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: Optional[str] = None
    use_tls: bool = True


@dataclass
class SourceConfig:
    """One owner/account pair to import.

    Attributes:
        owner: Whose data this is (written to the Owner column)
        account: Account label (written to the Account column)
        access_token: Aggregation API access token
        access_token_env: Environment variable holding the token
    """
    owner: str
    account: str
    access_token: Optional[str] = None
    access_token_env: Optional[str] = None


@dataclass
class IngestConfig:
    """Configuration for an ingest invocation"""
    sheet_path: str = "data/transactions.csv"
    initial_lookback_days: int = 800
    overlap_days: int = 10
    rollup_label: str = "Rollup"
    rules_file: Optional[str] = None
    log_directory: str = "logs"
    plaid: Optional[PlaidSettings] = None
    notifications: Optional[NotificationSettings] = None
    sources: Optional[List[SourceConfig]] = None

    def __post_init__(self):
        if self.plaid is None:
            self.plaid = PlaidSettings()
        if self.notifications is None:
            self.notifications = NotificationSettings()
        if self.sources is None:
            self.sources = []


@dataclass
class RunResult:
    """Result of one owner/account import run"""
    owner: str
    account: str
    operation: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    fetched_count: int = 0
    accepted_count: int = 0
    rows_written: int = 0
    processing_time: float = 0.0
    success: bool = False
    error: Optional[str] = None
    stats: Dict[str, int] = field(default_factory=dict)


@dataclass
class BatchSummary:
    """Summary over all runs of one invocation"""
    total_runs: int
    successful_runs: int
    failed_runs: int
    total_rows_written: int
    results: List[RunResult]

    @property
    def success(self) -> bool:
        return self.failed_runs == 0
