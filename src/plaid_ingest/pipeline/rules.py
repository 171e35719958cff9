"""Categorization rules applied to mapped rows before they are written."""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import yaml

from ..models.core import Record


logger = logging.getLogger(__name__)


class RuleTransform(ABC):
    """Post-processing step over mapped records.

    Implementations must return records in input order, and every returned
    record must have the same field list, since the header row is taken
    from the first one.
    """

    @abstractmethod
    def apply(self, records: Sequence[Record]) -> List[Record]:
        pass


class PassThroughRules(RuleTransform):
    """Leaves records untouched"""

    def apply(self, records: Sequence[Record]) -> List[Record]:
        return list(records)


@dataclass
class Rule:
    """One labeling rule.

    Attributes:
        field: Field whose value is matched
        set_values: Field values written when the rule matches
        contains: Case-insensitive substring to look for
        equals: Case-insensitive exact value to compare with
    """
    field: str
    set_values: Dict[str, Any]
    contains: Optional[str] = None
    equals: Optional[str] = None

    def matches(self, record: Record) -> bool:
        value = record.get(self.field)
        if value is None:
            return False
        text = str(value).lower()
        if self.equals is not None:
            return text == self.equals.lower()
        return self.contains.lower() in text


class KeywordRules(RuleTransform):
    """Applies an ordered list of rules to every record.

    All matching rules are applied in order, so a later rule overrides an
    earlier one. Fields written by a rule that are not already on the
    records are added to every record, empty unless a rule sets them.
    """

    def __init__(self, rules: Optional[List[Rule]] = None):
        self.rules = rules or []

    def _extra_fields(self, fields: Sequence[str]) -> List[str]:
        extra = []
        for rule in self.rules:
            for name in rule.set_values:
                if name not in fields and name not in extra:
                    extra.append(name)
        return extra

    def apply(self, records: Sequence[Record]) -> List[Record]:
        if not records or not self.rules:
            return list(records)

        extra = self._extra_fields(records[0].fields)
        result = []
        for record in records:
            for name in extra:
                record = record.extend(name, "")
            for rule in self.rules:
                if rule.matches(record):
                    record = record.update(rule.set_values)
            result.append(record)
        return result


class RulesLoader:
    """Loads keyword rules from a YAML file.

    Example rules.yaml:
        rules:
          - field: "Marchant Name"
            contains: "starbucks"
            set:
              Category: "Coffee"
              Rollup: "Food"
          - field: "Plaid Category 1"
            equals: "Transfer"
            set:
              Rollup: "Transfers"
    """

    def __init__(self, rules_path: Optional[str] = None):
        """Initialize the rules loader.

        Args:
            rules_path: Path to the rules file. None means no rules.
        """
        self.rules_path = rules_path

    def load(self) -> RuleTransform:
        """Load rules from file.

        Returns:
            KeywordRules when rules were found, PassThroughRules when the
            file is absent, empty or invalid.
        """
        if not self.rules_path:
            return PassThroughRules()

        if not os.path.exists(self.rules_path):
            logger.info(
                f"Rules file not found at {self.rules_path}. "
                "Continuing without categorization rules."
            )
            return PassThroughRules()

        try:
            with open(self.rules_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(
                f"Invalid YAML syntax in {self.rules_path}: {e}. "
                "Continuing without categorization rules."
            )
            return PassThroughRules()
        except OSError as e:
            logger.error(f"Error reading rules file {self.rules_path}: {e}")
            return PassThroughRules()

        if data is None:
            return PassThroughRules()

        if isinstance(data, dict):
            data = data.get('rules', [])

        if not isinstance(data, list):
            logger.error(
                f"Rules must be a list, got {type(data).__name__}. "
                "Continuing without categorization rules."
            )
            return PassThroughRules()

        rules = []
        for position, entry in enumerate(data):
            rule = self._parse_rule(entry, position)
            if rule is None:
                return PassThroughRules()
            rules.append(rule)

        logger.info(f"Loaded {len(rules)} rule(s) from {self.rules_path}")
        return KeywordRules(rules) if rules else PassThroughRules()

    def _parse_rule(self, entry: Any, position: int) -> Optional[Rule]:
        if not isinstance(entry, dict):
            logger.error(f"Rule {position} must be a dictionary")
            return None

        field_name = entry.get('field')
        set_values = entry.get('set')
        contains = entry.get('contains')
        equals = entry.get('equals')

        if not isinstance(field_name, str) or not field_name:
            logger.error(f"Rule {position} is missing 'field'")
            return None
        if not isinstance(set_values, dict) or not set_values:
            logger.error(f"Rule {position} is missing 'set'")
            return None
        if (contains is None) == (equals is None):
            logger.error(f"Rule {position} needs exactly one of 'contains' or 'equals'")
            return None

        return Rule(
            field=field_name,
            set_values={str(k): v for k, v in set_values.items()},
            contains=str(contains) if contains is not None else None,
            equals=str(equals) if equals is not None else None,
        )
