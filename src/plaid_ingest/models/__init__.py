"""Data models and structures"""

from .core import (
    SCHEMA_FIELDS,
    Account,
    BatchSummary,
    IngestConfig,
    Location,
    NotificationSettings,
    PlaidSettings,
    RawTransaction,
    Record,
    RunResult,
    SourceConfig,
    parse_iso_date,
)

__all__ = [
    'SCHEMA_FIELDS',
    'Account',
    'BatchSummary',
    'IngestConfig',
    'Location',
    'NotificationSettings',
    'PlaidSettings',
    'RawTransaction',
    'Record',
    'RunResult',
    'SourceConfig',
    'parse_iso_date',
]
