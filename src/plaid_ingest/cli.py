"""Command-line interface for the transaction ingest tool."""

import os
import sys
import click
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from .exceptions import ConfigurationError, IngestError
from .models.core import BatchSummary, SourceConfig
from .pipeline.rules import RulesLoader
from .pipeline.window import WindowSelector, format_date
from .utils.config_manager import ConfigManager
from .utils.error_handler import ErrorHandler
from .utils.importer import TransactionImporter
from .utils.notifier import build_notifier
from .utils.plaid_client import PlaidClient
from .utils.sheet_store import CSVSheetStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class PlaidIngestCLI:
    """Main CLI class for the transaction ingest tool"""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize CLI with configuration"""
        self.config_manager = ConfigManager(config_path)
        self.config = self.config_manager.load_config()
        self.error_handler = ErrorHandler(self.config.log_directory, enable_console=False)
        self.store = CSVSheetStore(self.config.sheet_path)
        self.window_selector = WindowSelector(
            initial_lookback_days=self.config.initial_lookback_days,
            overlap_days=self.config.overlap_days
        )

    def select_sources(self, owner: Optional[str] = None) -> List[SourceConfig]:
        """Return configured sources, optionally only those of one owner"""
        sources = self.config.sources
        if owner:
            sources = [s for s in sources if s.owner.lower() == owner.lower()]
        return sources

    def build_importer(self) -> TransactionImporter:
        """Wire the importer with the configured collaborators"""
        return TransactionImporter(
            reader=self.store,
            writer=self.store,
            client=PlaidClient.from_settings(self.config.plaid),
            notifier=build_notifier(self.config.notifications),
            rules=RulesLoader(self.config.rules_file).load(),
            window_selector=self.window_selector,
            error_handler=self.error_handler,
            rollup_label=self.config.rollup_label
        )

    def run_import(self,
                   owner: Optional[str] = None,
                   start_date=None,
                   end_date=None) -> BatchSummary:
        """Import every selected source"""
        sources = self.select_sources(owner)
        if not sources:
            self.error_handler.log_info("No sources configured to import")
            return BatchSummary(0, 0, 0, 0, [])

        importer = self.build_importer()
        summary = importer.import_all(sources, start_date, end_date)
        self.error_handler.log_info(
            f"Import finished: {summary.successful_runs}/{summary.total_runs} runs succeeded, "
            f"{summary.total_rows_written} rows written"
        )
        return summary

    def get_status(self) -> Dict[str, Any]:
        """Return sheet and configuration status"""
        latest = self.store.get_latest_stored_date()
        return {
            'sheet_path': self.config.sheet_path,
            'sheet_exists': os.path.exists(self.config.sheet_path),
            'has_header': self.store.has_header(),
            'row_count': self.store.row_count(),
            'latest_date': format_date(latest) if latest else None,
            'next_start_date': format_date(self.window_selector.select_start(latest)),
            'sources': [f"{s.owner}/{s.account}" for s in self.config.sources],
            'rules_file': self.config.rules_file,
            'notifications_enabled': bool(self.config.notifications.email)
        }


def _echo_summary(summary: BatchSummary) -> None:
    for result in summary.results:
        if result.success:
            click.echo(
                f"✓ {result.owner}/{result.account}: {result.rows_written} new rows "
                f"({result.fetched_count} fetched, "
                f"{format_date(result.start_date)} to {format_date(result.end_date)})"
            )
        else:
            click.echo(f"✗ {result.owner}/{result.account}: {result.error}")
    click.echo(f"  Runs: {summary.successful_runs}/{summary.total_runs} succeeded")
    click.echo(f"  Rows written: {summary.total_rows_written}")


def _parse_date_argument(ctx, param, value):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise click.BadParameter(f"'{value}' is not a YYYY-MM-DD date")


# CLI Commands using Click
@click.group()
@click.option('--config', '-c', help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """Plaid Ingest - Append Plaid transactions to a transactions sheet"""

    # Set up logging level
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    try:
        ctx.obj['cli'] = PlaidIngestCLI(config)
    except ConfigurationError as e:
        click.echo(f"✗ Configuration error: {e}")
        sys.exit(1)


@cli.command('import-latest')
@click.option('--owner', '-o', help='Only import sources of this owner')
@click.pass_context
def import_latest(ctx, owner):
    """Import transactions since the most recent stored date"""

    cli_instance = ctx.obj['cli']

    try:
        summary = cli_instance.run_import(owner=owner)
    except IngestError as e:
        click.echo(f"✗ Import failed: {e}")
        sys.exit(1)

    _echo_summary(summary)
    if not summary.success:
        sys.exit(1)


@cli.command('import-range')
@click.argument('start_date', callback=_parse_date_argument)
@click.argument('end_date', callback=_parse_date_argument)
@click.option('--owner', '-o', help='Only import sources of this owner')
@click.pass_context
def import_range(ctx, start_date, end_date, owner):
    """Import transactions between START_DATE and END_DATE (YYYY-MM-DD)"""

    cli_instance = ctx.obj['cli']

    if start_date > end_date:
        click.echo("✗ START_DATE must not be after END_DATE")
        sys.exit(1)

    try:
        summary = cli_instance.run_import(owner=owner, start_date=start_date, end_date=end_date)
    except IngestError as e:
        click.echo(f"✗ Import failed: {e}")
        sys.exit(1)

    _echo_summary(summary)
    if not summary.success:
        sys.exit(1)


@cli.command()
@click.pass_context
def setup(ctx):
    """Create the transactions sheet with its header row"""

    cli_instance = ctx.obj['cli']

    try:
        if cli_instance.store.initialize():
            click.echo(f"✓ Created {cli_instance.config.sheet_path}")
        else:
            click.echo(f"Sheet {cli_instance.config.sheet_path} already set up")
    except IngestError as e:
        click.echo(f"✗ Error during setup: {e}")
        sys.exit(1)


@cli.command()
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def reset(ctx, yes):
    """Remove every transaction row, keeping the header"""

    cli_instance = ctx.obj['cli']

    if not yes:
        click.confirm(
            f"Remove all {cli_instance.store.row_count()} rows from {cli_instance.config.sheet_path}?",
            abort=True
        )

    try:
        cli_instance.store.reset()
        click.echo("✓ Transactions removed")
    except IngestError as e:
        click.echo(f"✗ Error during reset: {e}")
        sys.exit(1)


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Sort the sheet by date, most recent first"""

    cli_instance = ctx.obj['cli']

    try:
        cli_instance.store.cleanup()
        click.echo(f"✓ {cli_instance.config.sheet_path} sorted by date")
    except IngestError as e:
        click.echo(f"✗ Error during cleanup: {e}")
        sys.exit(1)


@cli.command('init-config')
@click.argument('output_path', default='plaid_ingest.yml')
@click.option('--format', type=click.Choice(['json', 'yaml']), default='yaml', help='Configuration file format')
@click.pass_context
def init_config(ctx, output_path, format):
    """Generate configuration template file"""

    cli_instance = ctx.obj['cli']

    # Adjust extension based on format
    if format == 'yaml' and not output_path.endswith(('.yml', '.yaml')):
        output_path = output_path.replace('.json', '.yml')
    elif format == 'json' and not output_path.endswith('.json'):
        output_path = output_path.replace('.yml', '.json').replace('.yaml', '.json')

    try:
        cli_instance.config_manager.save_config_template(output_path)
        click.echo(f"✓ Configuration template generated: {output_path}")
        click.echo("  Edit the file to add your Plaid credentials and sources")
    except OSError as e:
        click.echo(f"✗ Error generating config template: {str(e)}")
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Show sheet and configuration status"""

    cli_instance = ctx.obj['cli']

    try:
        info = cli_instance.get_status()
    except IngestError as e:
        click.echo(f"✗ Error getting status: {e}")
        sys.exit(1)

    click.echo("Plaid Ingest Status")
    click.echo("=" * 40)
    click.echo(f"Sheet: {info['sheet_path']}")
    click.echo(f"Rows: {info['row_count']}")
    click.echo(f"Latest date: {info['latest_date'] or 'none'}")
    click.echo(f"Next fetch starts: {info['next_start_date']}")
    click.echo(f"Rules file: {info['rules_file'] or 'none'}")
    click.echo(f"Notifications: {'enabled' if info['notifications_enabled'] else 'disabled'}")
    click.echo()

    if info['sources']:
        click.echo("Sources:")
        for source in info['sources']:
            click.echo(f"  - {source}")
    else:
        click.echo("No sources configured")


if __name__ == '__main__':
    cli()
