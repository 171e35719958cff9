"""Transaction transformation and deduplication pipeline"""

from .base import AggregationClient, NotificationSink, StorageReader, StorageWriter
from .account_index import build_account_index
from .dedup_filter import DedupFilter
from .row_mapper import RowMapper
from .rules import KeywordRules, PassThroughRules, Rule, RulesLoader, RuleTransform
from .serializer import serialize
from .window import WindowSelector, format_date

__all__ = [
    'AggregationClient',
    'NotificationSink',
    'StorageReader',
    'StorageWriter',
    'build_account_index',
    'DedupFilter',
    'RowMapper',
    'KeywordRules',
    'PassThroughRules',
    'Rule',
    'RulesLoader',
    'RuleTransform',
    'serialize',
    'WindowSelector',
    'format_date',
]
