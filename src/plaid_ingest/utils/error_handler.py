"""Error handling and structured logging for ingest runs."""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any

from ..exceptions import (
    AccountLookupError,
    ConfigurationError,
    IngestError,
    SchemaError,
    UpstreamError,
    WriteError,
)


class ErrorSeverity(Enum):
    """Error severity levels"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification"""
    SCHEMA = "schema"
    ACCOUNT_LOOKUP = "account_lookup"
    UPSTREAM = "upstream"
    WRITE = "write"
    CONFIGURATION = "configuration"
    NOTIFICATION = "notification"
    SYSTEM = "system"


ERROR_CODES = {
    # Feed shape errors
    "MISSING_REQUIRED_FIELD": "D001",
    "MISSING_LOCATION": "D002",
    "RECORD_SHAPE_MISMATCH": "D003",
    "UNKNOWN_ACCOUNT": "D004",

    # Aggregation API errors
    "UPSTREAM_ERROR": "U001",

    # Storage errors
    "WRITE_ERROR": "W001",

    # Configuration errors
    "INVALID_CONFIG_VALUE": "C001",
    "MISSING_CREDENTIALS": "C002",

    # Notification errors
    "NOTIFICATION_FAILED": "N001",

    "UNEXPECTED_ERROR": "S999"
}


# Kept outside the plaid_ingest hierarchy so module loggers keep the
# level configured by the CLI.
RUN_LOGGER_NAME = 'plaid_ingest_runs'


@dataclass
class ErrorDetail:
    """Detailed error information"""
    timestamp: str
    severity: str
    category: str
    error_code: str
    message: str
    owner: Optional[str] = None
    account: Optional[str] = None
    operation: Optional[str] = None
    transaction_id: Optional[str] = None
    field_name: Optional[str] = None
    stack_trace: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line"""

    EXTRA_FIELDS = ('error_code', 'category', 'owner', 'account', 'operation', 'context')

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        return json.dumps(log_entry, default=str)


class ErrorHandler:
    """Collects run errors and writes them to structured logs"""

    def __init__(self, log_directory: Optional[str] = "logs", enable_console: bool = True):
        """
        Args:
            log_directory: Directory for JSON-lines log files. None disables
                           file logging.
            enable_console: Also log human-readable lines to stdout
        """
        self.log_directory = Path(log_directory) if log_directory else None
        if self.log_directory is not None:
            self.log_directory.mkdir(parents=True, exist_ok=True)

        self.errors: List[ErrorDetail] = []
        self.warnings: List[ErrorDetail] = []

        self._setup_logging(enable_console)

    def _setup_logging(self, enable_console: bool):
        """Set up structured JSON logging"""
        self.logger = logging.getLogger(RUN_LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        if self.log_directory is not None:
            log_file = self.log_directory / f"ingest_{datetime.now().strftime('%Y%m%d')}.jsonl"
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(file_handler)

            error_file = self.log_directory / f"errors_{datetime.now().strftime('%Y%m%d')}.jsonl"
            error_handler = logging.FileHandler(error_file)
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(error_handler)

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            ))
            self.logger.addHandler(console_handler)

    def log_error(self,
                  message: str,
                  error_type: str,
                  category: ErrorCategory = ErrorCategory.SYSTEM,
                  owner: Optional[str] = None,
                  account: Optional[str] = None,
                  operation: Optional[str] = None,
                  transaction_id: Optional[str] = None,
                  field_name: Optional[str] = None,
                  exception: Optional[BaseException] = None,
                  context: Optional[Dict[str, Any]] = None) -> ErrorDetail:
        """Log an error with run context"""

        error_code = ERROR_CODES.get(error_type, "S999")
        stack_trace = None

        if exception:
            stack_trace = ''.join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            ))

        error_detail = ErrorDetail(
            timestamp=datetime.now().isoformat(),
            severity=ErrorSeverity.ERROR.value,
            category=category.value,
            error_code=error_code,
            message=message,
            owner=owner,
            account=account,
            operation=operation,
            transaction_id=transaction_id,
            field_name=field_name,
            stack_trace=stack_trace,
            context=context or {}
        )

        self.errors.append(error_detail)

        self.logger.error(
            message,
            extra={
                'error_code': error_code,
                'category': category.value,
                'owner': owner,
                'account': account,
                'operation': operation,
                'context': context or {}
            }
        )

        return error_detail

    def log_warning(self,
                    message: str,
                    warning_type: str,
                    category: ErrorCategory = ErrorCategory.SYSTEM,
                    owner: Optional[str] = None,
                    account: Optional[str] = None,
                    context: Optional[Dict[str, Any]] = None) -> ErrorDetail:
        """Log a warning with run context"""

        warning_code = ERROR_CODES.get(warning_type, "W999")

        warning_detail = ErrorDetail(
            timestamp=datetime.now().isoformat(),
            severity=ErrorSeverity.WARNING.value,
            category=category.value,
            error_code=warning_code,
            message=message,
            owner=owner,
            account=account,
            context=context or {}
        )

        self.warnings.append(warning_detail)

        self.logger.warning(
            message,
            extra={
                'error_code': warning_code,
                'category': category.value,
                'owner': owner,
                'account': account,
                'context': context or {}
            }
        )

        return warning_detail

    def log_info(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Log informational message"""
        self.logger.info(message, extra={'context': context or {}})

    def log_debug(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Log debug message"""
        self.logger.debug(message, extra={'context': context or {}})

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors and warnings"""
        errors_by_category: Dict[str, int] = {}
        warnings_by_category: Dict[str, int] = {}

        for error in self.errors:
            errors_by_category[error.category] = errors_by_category.get(error.category, 0) + 1

        for warning in self.warnings:
            warnings_by_category[warning.category] = warnings_by_category.get(warning.category, 0) + 1

        failed_runs = set(
            (e.owner, e.account) for e in self.errors if e.owner or e.account
        )

        return {
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings),
            'errors_by_category': errors_by_category,
            'warnings_by_category': warnings_by_category,
            'runs_with_errors': len(failed_runs)
        }

    def generate_error_report(self, output_file: Optional[str] = None) -> str:
        """Write a JSON report of all errors and warnings"""
        if output_file is None:
            base = self.log_directory or Path(".")
            output_file = str(base / f"error_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json")

        report = {
            'report_timestamp': datetime.now().isoformat(),
            'summary': self.get_error_summary(),
            'all_errors': [error.to_dict() for error in self.errors],
            'all_warnings': [warning.to_dict() for warning in self.warnings]
        }

        with open(output_file, 'w') as f:
            json.dump(report, f, indent=2, default=str)

        self.log_info(f"Error report generated: {output_file}")
        return output_file

    def clear_errors(self):
        """Clear all accumulated errors and warnings"""
        self.errors.clear()
        self.warnings.clear()

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def get_errors_for_run(self, owner: str, account: str) -> List[ErrorDetail]:
        """Get all errors for one owner/account run"""
        return [e for e in self.errors if e.owner == owner and e.account == account]


def _classify(exception: BaseException):
    """Map an exception to its (error_type, category) pair"""
    if isinstance(exception, AccountLookupError):
        return "UNKNOWN_ACCOUNT", ErrorCategory.ACCOUNT_LOOKUP
    if isinstance(exception, SchemaError):
        if exception.field == "location":
            return "MISSING_LOCATION", ErrorCategory.SCHEMA
        if exception.field:
            return "MISSING_REQUIRED_FIELD", ErrorCategory.SCHEMA
        return "RECORD_SHAPE_MISMATCH", ErrorCategory.SCHEMA
    if isinstance(exception, UpstreamError):
        return "UPSTREAM_ERROR", ErrorCategory.UPSTREAM
    if isinstance(exception, WriteError):
        return "WRITE_ERROR", ErrorCategory.WRITE
    if isinstance(exception, ConfigurationError):
        if exception.field == "access_token":
            return "MISSING_CREDENTIALS", ErrorCategory.CONFIGURATION
        return "INVALID_CONFIG_VALUE", ErrorCategory.CONFIGURATION
    return "UNEXPECTED_ERROR", ErrorCategory.SYSTEM


def handle_run_error(error_handler: ErrorHandler,
                     owner: str,
                     account: str,
                     operation: str,
                     exception: BaseException) -> ErrorDetail:
    """Log a failed owner/account run"""
    error_type, category = _classify(exception)
    transaction_id = None
    field_name = None
    if isinstance(exception, IngestError):
        transaction_id = exception.transaction_id
        field_name = exception.field

    return error_handler.log_error(
        f"{operation} failed for {owner}/{account}: {exception}",
        error_type,
        category,
        owner=owner,
        account=account,
        operation=operation,
        transaction_id=transaction_id,
        field_name=field_name,
        exception=exception
    )
