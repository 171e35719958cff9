"""Utility functions and helpers"""

from .config_manager import ConfigManager, get_default_config_manager
from .error_handler import ErrorHandler, ErrorCategory, ErrorSeverity, handle_run_error
from .sheet_store import CSVSheetStore
from .plaid_client import PlaidClient
from .notifier import EmailNotifier, NullNotifier, build_notifier
from .importer import TransactionImporter, build_block

__all__ = [
    'ConfigManager',
    'get_default_config_manager',
    'ErrorHandler',
    'ErrorCategory',
    'ErrorSeverity',
    'handle_run_error',
    'CSVSheetStore',
    'PlaidClient',
    'EmailNotifier',
    'NullNotifier',
    'build_notifier',
    'TransactionImporter',
    'build_block'
]
