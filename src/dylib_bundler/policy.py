"""
Bundle-inclusion policy for dylib-bundler.

Decides from a dependency's directory prefix whether the library is
system-provided (left alone) or foreign (copied into the bundle).
"""

import fnmatch
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from .cli_config import PolicyConfig

FRAMEWORK_MARKER = ".framework"


class RuleType(Enum):
    """Kind of prefix rule, reported as the reason for an exclusion."""

    SYSTEM = "system"
    IGNORED = "ignored"
    ALWAYS_BUNDLE = "always_bundle"


class MatchType(Enum):
    """Types of prefix matching."""

    PATTERN = "pattern"
    PREFIX = "prefix"


@dataclass(frozen=True)
class PrefixRule:
    """A single prefix rule."""

    value: str
    rule_type: RuleType
    match_type: MatchType = MatchType.PREFIX

    def matches(self, prefix: str) -> bool:
        if self.match_type == MatchType.PATTERN:
            return fnmatch.fnmatchcase(prefix, self.value)
        return prefix.startswith(self.value)


def _rules_from(values: Iterable[str], rule_type: RuleType) -> List[PrefixRule]:
    rules = []
    for value in values:
        if any(ch in value for ch in "*?["):
            rules.append(PrefixRule(value, rule_type, MatchType.PATTERN))
        else:
            rules.append(PrefixRule(value, rule_type, MatchType.PREFIX))
    return rules


class BundlePolicy:
    """Predicate over dependency prefixes."""

    def __init__(self, config: Optional[PolicyConfig] = None):
        config = config or PolicyConfig()
        self.always_rules = _rules_from(
            config.always_bundle_prefixes, RuleType.ALWAYS_BUNDLE
        )
        # checked in order, first match excludes
        self.exclusion_rules = _rules_from(
            config.system_prefixes, RuleType.SYSTEM
        ) + _rules_from(config.ignored_prefixes, RuleType.IGNORED)
        self.excluded_markers = list(config.excluded_markers)

    def exclusion_reason(self, prefix: str) -> Optional[str]:
        """
        Why libraries under ``prefix`` stay out of the bundle.

        Returns None when they must be bundled, otherwise ``"framework"``,
        ``"excluded_marker"`` or the value of the matching rule's RuleType.
        """
        if FRAMEWORK_MARKER in prefix:
            return "framework"
        if any(rule.matches(prefix) for rule in self.always_rules):
            return None
        if any(prefix.startswith(marker) for marker in self.excluded_markers):
            return "excluded_marker"
        for rule in self.exclusion_rules:
            if rule.matches(prefix):
                return rule.rule_type.value
        return None

    def is_prefix_bundled(self, prefix: str) -> bool:
        """Return True if libraries under ``prefix`` must be copied into the bundle."""
        return self.exclusion_reason(prefix) is None
