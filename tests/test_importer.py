"""Tests for import runs."""

import os
import shutil
import tempfile
import unittest
from datetime import date, timedelta
from unittest import mock

from plaid_ingest.exceptions import AccountLookupError, ConfigurationError, SchemaError, UpstreamError
from plaid_ingest.models.core import SCHEMA_FIELDS, SourceConfig
from plaid_ingest.pipeline.row_mapper import RowMapper
from plaid_ingest.pipeline.rules import KeywordRules, Rule
from plaid_ingest.pipeline.window import WindowSelector
from plaid_ingest.utils.error_handler import ErrorHandler
from plaid_ingest.utils.importer import IMPORT_LATEST, IMPORT_RANGE, TransactionImporter, build_block
from plaid_ingest.utils.sheet_store import CSVSheetStore

from payloads import (
    FakeClient,
    MemorySheet,
    RecordingNotifier,
    make_account,
    make_transaction,
)


TODAY = date(2024, 1, 15)


def _column(name):
    return SCHEMA_FIELDS.index(name)


class TestBuildBlock(unittest.TestCase):
    """Test cases for build_block"""

    def setUp(self):
        self.mapper = RowMapper("Alice", "Chase")

    def test_single_transaction(self):
        block, stats = build_block([make_account()], [make_transaction()], set(), self.mapper)

        self.assertEqual(len(block), 1)
        row = block[0]
        self.assertEqual(row[_column("Name")], "Coffee Shop")
        self.assertEqual(row[_column("Marchant Name")], "Coffee Shop")
        self.assertEqual(row[_column("Plaid Category 1")], "Food")
        self.assertEqual(row[_column("Mask")], "1234")
        self.assertEqual(row[_column("Transaction ID")], "t1")
        self.assertEqual(stats['accepted_transactions'], 1)

    def test_pending_and_existing_excluded(self):
        transactions = [
            make_transaction("t1"),
            make_transaction("t2", pending=True),
            make_transaction("t3"),
        ]

        block, stats = build_block([make_account()], transactions, {"t1"}, self.mapper)

        self.assertEqual([r[_column("Transaction ID")] for r in block], ["t3"])
        self.assertEqual(stats['pending_dropped'], 1)
        self.assertEqual(stats['existing_dropped'], 1)

    def test_header_included(self):
        block, _ = build_block(
            [make_account()], [make_transaction()], set(), self.mapper, include_headers=True
        )
        self.assertEqual(block[0], list(SCHEMA_FIELDS))
        self.assertEqual(len(block), 2)

    def test_rules_applied(self):
        rules = KeywordRules([Rule(field="Name", contains="coffee", set_values={"Rollup": "Food & Drink"})])
        block, _ = build_block([make_account()], [make_transaction()], set(), self.mapper, rules)
        self.assertEqual(block[0][_column("Rollup")], "Food & Drink")

    def test_nothing_new(self):
        block, _ = build_block([make_account()], [make_transaction()], {"t1"}, self.mapper, include_headers=True)
        self.assertEqual(block, [])

    def test_matching_stored_header(self):
        block, _ = build_block(
            [make_account()], [make_transaction()], set(), self.mapper,
            stored_header=list(SCHEMA_FIELDS)
        )
        self.assertEqual(len(block), 1)

    def test_rule_field_missing_from_stored_header(self):
        rules = KeywordRules([Rule(field="Name", contains="coffee", set_values={"Merchant Group": "Cafe"})])

        with self.assertRaises(SchemaError) as ctx:
            build_block(
                [make_account()], [make_transaction()], set(), self.mapper, rules,
                stored_header=list(SCHEMA_FIELDS)
            )

        self.assertIn("Merchant Group", str(ctx.exception))


class TestTransactionImporter(unittest.TestCase):
    """Test cases for TransactionImporter"""

    def setUp(self):
        self.sheet = MemorySheet.with_header()
        self.notifier = RecordingNotifier()
        self.source = SourceConfig(owner="Alice", account="Chase", access_token="tok-a")
        self.client = FakeClient({"tok-a": ([make_account()], [make_transaction()])})

    def _importer(self, sheet=None, client=None, **kwargs):
        sheet = sheet or self.sheet
        return TransactionImporter(
            sheet,
            sheet,
            client or self.client,
            notifier=self.notifier,
            window_selector=WindowSelector(today=TODAY),
            **kwargs
        )

    def test_import_writes_new_row(self):
        result = self._importer().import_source(self.source)

        self.assertTrue(result.success)
        self.assertEqual(result.operation, IMPORT_LATEST)
        self.assertEqual(result.rows_written, 1)
        self.assertEqual(len(self.sheet.data_rows()), 1)
        row = self.sheet.data_rows()[0]
        self.assertEqual(row[_column("Owner")], "Alice")
        self.assertEqual(row[_column("Account")], "Chase")
        self.assertEqual(row[_column("Transaction ID")], "t1")

    def test_rerun_is_idempotent(self):
        importer = self._importer()
        importer.import_source(self.source)
        second = importer.import_source(self.source)

        self.assertEqual(second.rows_written, 0)
        self.assertEqual(len(self.sheet.data_rows()), 1)

    def test_empty_sheet_window_and_header(self):
        sheet = MemorySheet()
        result = self._importer(sheet=sheet).import_source(self.source)

        self.assertEqual(self.client.calls[0], (TODAY - timedelta(days=800), TODAY, "tok-a"))
        self.assertEqual(sheet.rows[0], list(SCHEMA_FIELDS))
        self.assertEqual(len(sheet.data_rows()), 1)
        self.assertEqual(result.rows_written, 1)

    def test_window_overlaps_latest_stored_date(self):
        row = [""] * len(SCHEMA_FIELDS)
        row[_column("Date")] = "2024-01-10"
        row[_column("Transaction ID")] = "old"
        self.sheet.rows.append(row)

        self._importer().import_source(self.source)

        self.assertEqual(self.client.calls[0][:2], (date(2023, 12, 31), TODAY))

    def test_rows_sorted_after_append(self):
        client = FakeClient({"tok-a": (
            [make_account()],
            [make_transaction("t1", date="2024-01-02"), make_transaction("t2", date="2024-01-09")],
        )})

        self._importer(client=client).import_source(self.source)

        self.assertEqual(
            [r[_column("Transaction ID")] for r in self.sheet.data_rows()],
            ["t2", "t1"]
        )

    def test_import_range(self):
        result = self._importer().import_source(
            self.source, start_date=date(2023, 6, 1), end_date=date(2023, 6, 30)
        )

        self.assertEqual(result.operation, IMPORT_RANGE)
        self.assertEqual(self.client.calls[0][:2], (date(2023, 6, 1), date(2023, 6, 30)))

    def test_import_range_defaults_end_to_today(self):
        self._importer().import_source(self.source, start_date=date(2023, 6, 1))
        self.assertEqual(self.client.calls[0][1], TODAY)

    def test_inverted_range_rejected(self):
        with self.assertRaises(ConfigurationError):
            self._importer().import_source(
                self.source, start_date=date(2023, 7, 1), end_date=date(2023, 6, 1)
            )
        self.assertEqual(self.client.calls, [])

    def test_unknown_account_writes_nothing(self):
        client = FakeClient({"tok-a": (
            [make_account()],
            [make_transaction("t1"), make_transaction("t2", account_id="ghost")],
        )})

        with self.assertRaises(AccountLookupError) as ctx:
            self._importer(client=client).import_source(self.source)

        self.assertEqual(ctx.exception.owner, "Alice")
        self.assertEqual(ctx.exception.transaction_id, "t2")
        self.assertEqual(self.sheet.append_calls, 0)
        self.assertEqual(self.sheet.data_rows(), [])

    def test_access_token_from_environment(self):
        source = SourceConfig(owner="Bob", account="Amex", access_token_env="AMEX_TOKEN")
        with mock.patch.dict(os.environ, {"AMEX_TOKEN": "tok-a"}):
            result = self._importer().import_source(source)
        self.assertTrue(result.success)
        self.assertEqual(self.client.calls[0][2], "tok-a")

    def test_missing_access_token(self):
        source = SourceConfig(owner="Bob", account="Amex", access_token_env="UNSET_TOKEN_VAR")
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigurationError):
                TransactionImporter.resolve_access_token(source)

        with self.assertRaises(ConfigurationError):
            TransactionImporter.resolve_access_token(SourceConfig(owner="Bob", account="Amex"))


class TestImportAll(unittest.TestCase):
    """Test cases for TransactionImporter.import_all"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.sheet = MemorySheet.with_header()
        self.notifier = RecordingNotifier()
        self.error_handler = ErrorHandler(log_directory=None, enable_console=False)
        self.sources = [
            SourceConfig(owner="Alice", account="Chase", access_token="tok-a"),
            SourceConfig(owner="Bob", account="Amex", access_token="tok-b"),
        ]

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _importer(self, client, sheet=None):
        sheet = sheet or self.sheet
        return TransactionImporter(
            sheet,
            sheet,
            client,
            notifier=self.notifier,
            window_selector=WindowSelector(today=TODAY),
            error_handler=self.error_handler
        )

    def test_failed_run_does_not_stop_next(self):
        client = FakeClient({
            "tok-a": UpstreamError("ITEM_LOGIN_REQUIRED"),
            "tok-b": ([make_account("b1")], [make_transaction("b-t1", account_id="b1")]),
        })

        summary = self._importer(client).import_all(self.sources)

        self.assertEqual(summary.total_runs, 2)
        self.assertEqual(summary.failed_runs, 1)
        self.assertEqual(summary.successful_runs, 1)
        self.assertFalse(summary.success)
        self.assertFalse(summary.results[0].success)
        self.assertIn("ITEM_LOGIN_REQUIRED", summary.results[0].error)
        self.assertEqual(summary.total_rows_written, 1)
        self.assertEqual(self.sheet.data_rows()[0][_column("Owner")], "Bob")

    def test_failure_notifies_once_per_run(self):
        client = FakeClient({
            "tok-a": UpstreamError("ITEM_LOGIN_REQUIRED"),
            "tok-b": UpstreamError("RATE_LIMIT_EXCEEDED"),
        })

        self._importer(client).import_all(self.sources)

        self.assertEqual(
            [(n[0], n[1], n[2]) for n in self.notifier.notifications],
            [("Alice", "Chase", IMPORT_LATEST), ("Bob", "Amex", IMPORT_LATEST)]
        )
        self.assertEqual(len(self.error_handler.get_errors_for_run("Alice", "Chase")), 1)
        self.assertEqual(self.error_handler.errors[0].error_code, "U001")

    def test_write_failure_reported(self):
        sheet = MemorySheet.with_header()
        sheet.fail_on_append = True
        client = FakeClient({"tok-a": ([make_account()], [make_transaction()])})

        summary = self._importer(client, sheet=sheet).import_all(self.sources[:1])

        self.assertEqual(summary.failed_runs, 1)
        self.assertEqual(self.error_handler.errors[0].error_code, "W001")
        self.assertEqual(len(self.notifier.notifications), 1)

    def test_notifier_failure_is_logged(self):
        class BrokenNotifier(RecordingNotifier):
            def notify(self, owner, account, operation, error):
                raise RuntimeError("smtp down")

        client = FakeClient({"tok-a": UpstreamError("boom"), "tok-b": ([], [])})
        importer = self._importer(client)
        importer.notifier = BrokenNotifier()

        summary = importer.import_all(self.sources)

        self.assertEqual(summary.failed_runs, 1)
        self.assertEqual(summary.successful_runs, 1)

    def test_end_to_end_with_csv_sheet(self):
        store = CSVSheetStore(os.path.join(self.temp_dir, 'transactions.csv'))
        client = FakeClient({
            "tok-a": ([make_account()], [make_transaction("t1"), make_transaction("t2", pending=True)]),
            "tok-b": ([make_account("b1")], [make_transaction("b-t1", account_id="b1", date="2024-01-05")]),
        })
        importer = TransactionImporter(
            store, store, client,
            notifier=self.notifier,
            window_selector=WindowSelector(today=TODAY)
        )

        first = importer.import_all(self.sources)
        second = importer.import_all(self.sources)

        self.assertEqual(first.total_rows_written, 2)
        self.assertEqual(second.total_rows_written, 0)
        self.assertEqual(store.get_existing_transaction_ids(), {"t1", "b-t1"})
        self.assertEqual(store.row_count(), 2)
        self.assertEqual(store.get_latest_stored_date(), date(2024, 1, 5))
        self.assertEqual(self.notifier.notifications, [])

    def test_rule_field_not_in_sheet_header_fails_run(self):
        sheet_path = os.path.join(self.temp_dir, 'transactions.csv')
        store = CSVSheetStore(sheet_path)
        store.initialize()
        client = FakeClient({"tok-a": ([make_account()], [make_transaction("t1")])})
        importer = TransactionImporter(
            store, store, client,
            notifier=self.notifier,
            rules=KeywordRules([Rule(field="Name", contains="coffee", set_values={"Merchant Group": "Cafe"})]),
            window_selector=WindowSelector(today=TODAY),
            error_handler=self.error_handler
        )

        summary = importer.import_all(self.sources[:1])

        self.assertEqual(summary.failed_runs, 1)
        self.assertEqual(store.row_count(), 0)
        self.assertEqual(store.get_header(), list(SCHEMA_FIELDS))
        self.assertEqual(self.error_handler.errors[0].error_code, "D003")
        self.assertEqual(len(self.notifier.notifications), 1)


if __name__ == '__main__':
    unittest.main()
