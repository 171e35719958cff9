"""Transaction import runs: fetch, filter, map, write.

Each configured owner/account source is imported in its own run. A run
reads the sheet once, fetches from the aggregation API, builds the full
block of new rows and appends it in a single write. Runs are processed one
after another; a failed run is logged and reported, and the next run still
proceeds.
"""

import logging
import os
import time
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import ConfigurationError, IngestError, SchemaError
from ..models.core import (
    Account,
    BatchSummary,
    RawTransaction,
    RunResult,
    SourceConfig,
)
from ..pipeline.account_index import build_account_index
from ..pipeline.base import AggregationClient, NotificationSink, StorageReader, StorageWriter
from ..pipeline.dedup_filter import DedupFilter
from ..pipeline.row_mapper import RowMapper
from ..pipeline.rules import PassThroughRules, RuleTransform
from ..pipeline.serializer import serialize
from ..pipeline.window import WindowSelector, format_date
from .error_handler import ErrorHandler, handle_run_error
from .notifier import NullNotifier


logger = logging.getLogger(__name__)


IMPORT_LATEST = "import_latest"
IMPORT_RANGE = "import_range"


def build_block(
    raw_accounts: Sequence[Dict[str, Any]],
    raw_transactions: Sequence[Dict[str, Any]],
    existing_ids,
    mapper: RowMapper,
    rules: Optional[RuleTransform] = None,
    include_headers: bool = False,
    stored_header: Optional[Sequence[str]] = None
) -> Tuple[List[List[Any]], Dict[str, int]]:
    """Turn one API payload into the block of rows to append.

    Args:
        raw_accounts: Account records from the API
        raw_transactions: Transaction records from the API
        existing_ids: Transaction ids already stored
        mapper: Row mapper carrying the run's owner/account labels
        rules: Rule transform applied to mapped records
        include_headers: Prepend a header row
        stored_header: Header row already in storage; records must match it

    Returns:
        Tuple of (block, filter statistics)

    Raises:
        SchemaError: If a record is malformed or does not match the stored header
        AccountLookupError: If a transaction references an unknown account
    """
    accounts = [Account.from_dict(a) for a in raw_accounts]
    transactions = [RawTransaction.from_dict(t) for t in raw_transactions]

    account_index = build_account_index(accounts)
    accepted, stats = DedupFilter(existing_ids).filter_with_stats(transactions)

    records = mapper.map_batch(accepted, account_index)
    records = (rules or PassThroughRules()).apply(records)
    if records and stored_header is not None:
        header = tuple(cell.strip() for cell in stored_header)
        if header != records[0].fields:
            added = [f for f in records[0].fields if f not in header]
            missing = [f for f in header if f not in records[0].fields]
            raise SchemaError(
                "Record fields do not match the stored header "
                f"(not in sheet: {', '.join(added) or 'none'}; not in records: {', '.join(missing) or 'none'})"
            )
    return serialize(records, include_headers=include_headers), stats


class TransactionImporter:
    """Runs imports for owner/account sources against one sheet.

    Example:
        importer = TransactionImporter(store, store, client, notifier=notifier)
        summary = importer.import_all(config.sources)
    """

    def __init__(
        self,
        reader: StorageReader,
        writer: StorageWriter,
        client: AggregationClient,
        notifier: Optional[NotificationSink] = None,
        rules: Optional[RuleTransform] = None,
        window_selector: Optional[WindowSelector] = None,
        error_handler: Optional[ErrorHandler] = None,
        rollup_label: str = RowMapper.DEFAULT_ROLLUP
    ):
        """Initialize importer with its collaborators.

        Args:
            reader: Read side of the sheet
            writer: Write side of the sheet
            client: Aggregation API client
            notifier: Receives failed-run reports
            rules: Categorization rules for mapped rows
            window_selector: Computes incremental fetch windows
            error_handler: Collects and logs run errors
            rollup_label: Default Rollup column value
        """
        self.reader = reader
        self.writer = writer
        self.client = client
        self.notifier = notifier or NullNotifier()
        self.rules = rules or PassThroughRules()
        self.window_selector = window_selector or WindowSelector()
        self.error_handler = error_handler
        self.rollup_label = rollup_label

    @staticmethod
    def resolve_access_token(source: SourceConfig) -> str:
        """Return the source's access token, from config or environment.

        Raises:
            ConfigurationError: If no token is available
        """
        if source.access_token:
            return source.access_token
        if source.access_token_env:
            token = os.getenv(source.access_token_env)
            if token:
                return token
            raise ConfigurationError(
                f"Environment variable {source.access_token_env} is not set",
                owner=source.owner,
                account=source.account,
                field="access_token"
            )
        raise ConfigurationError(
            "No access token configured",
            owner=source.owner,
            account=source.account,
            field="access_token"
        )

    def import_source(
        self,
        source: SourceConfig,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> RunResult:
        """Import one owner/account source.

        Without start_date the window is derived from the most recent
        stored date. Nothing is written unless the whole block was built.

        Raises:
            IngestError: If any step of the run fails
        """
        operation = IMPORT_RANGE if start_date is not None else IMPORT_LATEST
        started = time.time()

        access_token = self.resolve_access_token(source)

        existing_ids = self.reader.get_existing_transaction_ids()
        include_headers = not self.reader.has_header()
        stored_header = None if include_headers else self.reader.get_header()

        if start_date is None:
            start_date, default_end = self.window_selector.select_window(
                self.reader.get_latest_stored_date()
            )
            end_date = end_date or default_end
        elif end_date is None:
            end_date = self.window_selector.today

        if start_date > end_date:
            raise ConfigurationError(
                f"Start date {format_date(start_date)} is after end date {format_date(end_date)}",
                owner=source.owner,
                account=source.account
            )

        logger.info(
            f"Importing {source.owner}/{source.account} "
            f"from {format_date(start_date)} to {format_date(end_date)}"
        )

        raw_accounts, raw_transactions = self.client.fetch_transactions(
            start_date, end_date, access_token
        )

        mapper = RowMapper(source.owner, source.account, self.rollup_label)
        try:
            block, stats = build_block(
                raw_accounts,
                raw_transactions,
                existing_ids,
                mapper,
                self.rules,
                include_headers=include_headers,
                stored_header=stored_header
            )
        except IngestError as e:
            if e.owner is None:
                e.owner, e.account = source.owner, source.account
            raise

        rows_written = self.writer.append_rows(block, clear_first=False)
        if rows_written:
            self.writer.cleanup()
            if include_headers:
                rows_written -= 1

        result = RunResult(
            owner=source.owner,
            account=source.account,
            operation=operation,
            start_date=start_date,
            end_date=end_date,
            fetched_count=len(raw_transactions),
            accepted_count=stats['accepted_transactions'],
            rows_written=rows_written,
            processing_time=time.time() - started,
            success=True,
            stats=stats
        )
        logger.info(
            f"Imported {result.accepted_count} of {result.fetched_count} transactions "
            f"for {source.owner}/{source.account}"
        )
        return result

    def import_all(
        self,
        sources: Sequence[SourceConfig],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> BatchSummary:
        """Import every source in order, isolating failures per source."""
        results = []
        operation = IMPORT_RANGE if start_date is not None else IMPORT_LATEST

        for source in sources:
            try:
                result = self.import_source(source, start_date, end_date)
            except Exception as e:
                result = self._record_failure(source, operation, e)
            results.append(result)

        successful = sum(1 for r in results if r.success)
        return BatchSummary(
            total_runs=len(results),
            successful_runs=successful,
            failed_runs=len(results) - successful,
            total_rows_written=sum(r.rows_written for r in results),
            results=results
        )

    def _record_failure(self, source: SourceConfig, operation: str, error: Exception) -> RunResult:
        if self.error_handler is not None:
            handle_run_error(self.error_handler, source.owner, source.account, operation, error)
        else:
            logger.error(f"{operation} failed for {source.owner}/{source.account}: {error}")

        try:
            self.notifier.notify(source.owner, source.account, operation, error)
        except Exception as notify_error:
            logger.error(f"Notification failed for {source.owner}/{source.account}: {notify_error}")

        return RunResult(
            owner=source.owner,
            account=source.account,
            operation=operation,
            success=False,
            error=str(error)
        )
