"""Rule Catalog.

Immutable, versioned collection of prescription safety rules, plus the
loader that builds one from a YAML/JSON document and the registry that
publishes catalog replacements.

Catalog document format:

    version: "2026.10"
    rules:
      - kind: allergy
        id: AL001
        allergen: penicillin
        cross_reactive: [amoxicillin, ampicillin, penicillin]
      - kind: interaction
        id: DI-PDE5-001
        drug_a: sildenafil
        drug_b: tadalafil
        severity: relative
        message: Do not combine PDE5 inhibitors
        action: Choose one PDE5 inhibitor only
      - kind: age
        id: AGE-001
        medication_pattern: aspirin
        min_age: 18
        severity: absolute
        message: Risk of Reye syndrome in children

A malformed entry is skipped with a warning; only a document that cannot
be read at all fails the load.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

import yaml

from domain.prescription_safety_models import (
    AgeRule,
    AllergyRule,
    ConditionRule,
    InteractionRule,
    Organ,
    OrganImpairmentRule,
    PregnancyRule,
    Rule,
    RuleCatalogError,
    Severity,
    RULE_KINDS,
    rule_kind,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Versions kept by RuleCatalogRegistry.history
HISTORY_SIZE = 20


@dataclass(frozen=True)
class RuleCatalog:
    """Immutable collection of typed rules.

    Attributes:
        version: Catalog version label, recorded on every result
        rules: Rules in catalog order
        rejected_entries: Number of malformed entries skipped while loading
    """

    version: str
    rules: Tuple[Rule, ...] = ()
    rejected_entries: int = 0
    _by_kind: Dict[type, Tuple[Rule, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        rules = tuple(self.rules)
        object.__setattr__(self, "rules", rules)
        by_kind: Dict[type, List[Rule]] = {rule_type: [] for rule_type in RULE_KINDS.values()}
        for rule in rules:
            rule_kind(rule)  # rejects non-rule objects
            by_kind[type(rule)].append(rule)
        object.__setattr__(
            self, "_by_kind", {rule_type: tuple(items) for rule_type, items in by_kind.items()}
        )

    def rules_of(self, rule_type: Type[R]) -> Tuple[R, ...]:
        """Rules of one kind, in catalog order."""
        return self._by_kind.get(rule_type, ())

    @property
    def allergy_rules(self) -> Tuple[AllergyRule, ...]:
        return self.rules_of(AllergyRule)

    @property
    def interaction_rules(self) -> Tuple[InteractionRule, ...]:
        return self.rules_of(InteractionRule)

    @property
    def condition_rules(self) -> Tuple[ConditionRule, ...]:
        return self.rules_of(ConditionRule)

    @property
    def age_rules(self) -> Tuple[AgeRule, ...]:
        return self.rules_of(AgeRule)

    @property
    def pregnancy_rules(self) -> Tuple[PregnancyRule, ...]:
        return self.rules_of(PregnancyRule)

    @property
    def organ_rules(self) -> Tuple[OrganImpairmentRule, ...]:
        return self.rules_of(OrganImpairmentRule)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        """Get a rule by ID."""
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def with_rules(self, extra: Iterable[Rule], version: Optional[str] = None) -> "RuleCatalog":
        """New catalog with additional rules appended."""
        return RuleCatalog(
            version=version or self.version,
            rules=self.rules + tuple(extra),
            rejected_entries=self.rejected_entries,
        )

    def describe(self) -> Dict[str, Any]:
        """Catalog statistics."""
        return {
            "version": self.version,
            "total_rules": len(self.rules),
            "rejected_entries": self.rejected_entries,
            "rules_loaded": {
                kind: len(self.rules_of(rule_type)) for kind, rule_type in RULE_KINDS.items()
            },
        }

    def __len__(self) -> int:
        return len(self.rules)


# ========================================
# Loading
# ========================================

def _required_text(entry: Dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing or blank '{key}'")
    return value.strip()


def _optional_text(entry: Dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value.strip()


def _text_list(entry: Dict[str, Any], key: str) -> Tuple[str, ...]:
    values = entry.get(key)
    if not isinstance(values, list) or not values:
        raise ValueError(f"'{key}' must be a non-empty list")
    if not all(isinstance(value, str) and value.strip() for value in values):
        raise ValueError(f"'{key}' entries must be non-blank strings")
    return tuple(value.strip() for value in values)


def _severity(entry: Dict[str, Any]) -> Severity:
    raw = entry.get("severity")
    try:
        return Severity(str(raw).lower())
    except ValueError:
        raise ValueError(f"unknown severity {raw!r}")


def _optional_age(entry: Dict[str, Any], key: str) -> Optional[int]:
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer")
    return value


def parse_rule(entry: Dict[str, Any]) -> Rule:
    """Build one typed rule from a catalog entry.

    Raises:
        ValueError: If the entry is malformed
    """
    if not isinstance(entry, dict):
        raise ValueError(f"rule entry must be a mapping, got {type(entry).__name__}")

    kind = entry.get("kind")
    if not isinstance(kind, str) or kind not in RULE_KINDS:
        raise ValueError(f"unknown rule kind {kind!r}")

    rule_id = _required_text(entry, "id")

    if kind == "allergy":
        return AllergyRule(
            rule_id=rule_id,
            allergen=_required_text(entry, "allergen"),
            cross_reactive=_text_list(entry, "cross_reactive"),
            description=_optional_text(entry, "description"),
        )

    if kind == "interaction":
        return InteractionRule(
            rule_id=rule_id,
            drug_a=_required_text(entry, "drug_a"),
            drug_b=_required_text(entry, "drug_b"),
            severity=_severity(entry),
            message=_required_text(entry, "message"),
            action=_optional_text(entry, "action"),
        )

    if kind == "condition":
        return ConditionRule(
            rule_id=rule_id,
            condition=_required_text(entry, "condition"),
            medication_pattern=_required_text(entry, "medication_pattern"),
            severity=_severity(entry),
            message=_required_text(entry, "message"),
            recommendation=_optional_text(entry, "recommendation"),
        )

    if kind == "age":
        min_age = _optional_age(entry, "min_age")
        max_age = _optional_age(entry, "max_age")
        if min_age is None and max_age is None:
            raise ValueError("age rule needs min_age or max_age")
        if min_age is not None and max_age is not None and min_age > max_age:
            raise ValueError(f"min_age {min_age} exceeds max_age {max_age}")
        return AgeRule(
            rule_id=rule_id,
            medication_pattern=_required_text(entry, "medication_pattern"),
            severity=_severity(entry),
            message=_required_text(entry, "message"),
            min_age=min_age,
            max_age=max_age,
        )

    if kind == "pregnancy":
        return PregnancyRule(
            rule_id=rule_id,
            medication_pattern=_required_text(entry, "medication_pattern"),
            severity=_severity(entry),
            message=_required_text(entry, "message"),
            category=_optional_text(entry, "category") or None,
        )

    # organ_impairment
    organ_raw = entry.get("organ")
    try:
        organ = Organ(str(organ_raw).lower())
    except ValueError:
        raise ValueError(f"unknown organ {organ_raw!r}")
    return OrganImpairmentRule(
        rule_id=rule_id,
        organ=organ,
        medication_pattern=_required_text(entry, "medication_pattern"),
        severity=_severity(entry),
        message=_required_text(entry, "message"),
    )


def catalog_from_dict(data: Dict[str, Any]) -> RuleCatalog:
    """Build a catalog from a parsed document, skipping malformed rules."""
    if not isinstance(data, dict):
        raise RuleCatalogError("Rule catalog document must be a mapping")

    entries = data.get("rules")
    if not isinstance(entries, list):
        raise RuleCatalogError("Rule catalog document has no 'rules' list")

    version = str(data.get("version") or "unversioned")
    rules: List[Rule] = []
    seen_ids = set()
    rejected = 0

    for index, entry in enumerate(entries):
        try:
            rule = parse_rule(entry)
            if rule.rule_id in seen_ids:
                raise ValueError(f"duplicate rule id {rule.rule_id!r}")
        except ValueError as e:
            rejected += 1
            logger.warning(f"Skipping malformed rule #{index} in catalog {version}: {e}")
            continue
        seen_ids.add(rule.rule_id)
        rules.append(rule)

    catalog = RuleCatalog(version=version, rules=tuple(rules), rejected_entries=rejected)
    logger.info(
        f"Loaded rule catalog {version}: {len(rules)} rules, {rejected} rejected"
    )
    return catalog


def load_catalog(path: Union[str, Path]) -> RuleCatalog:
    """Load a catalog from a YAML or JSON file.

    Raises:
        RuleCatalogError: If the file is missing or cannot be parsed
    """
    catalog_path = Path(path)
    if not catalog_path.is_file():
        raise RuleCatalogError(f"Rule catalog not found: {catalog_path}")

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            if catalog_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise RuleCatalogError(f"Could not read rule catalog {catalog_path}: {e}") from e

    return catalog_from_dict(data)


# ========================================
# Registry
# ========================================

class RuleCatalogRegistry:
    """Holds the process-wide current catalog.

    Readers take one reference with current() and use it for the whole
    evaluation; publish() replaces the reference in a single assignment,
    so an evaluation never observes a partially updated catalog.
    """

    def __init__(self, catalog: Optional[RuleCatalog] = None, history_size: int = HISTORY_SIZE):
        self._catalog = catalog
        self._lock = Lock()
        self._history: Deque[str] = deque(maxlen=history_size)
        if catalog:
            self._history.append(catalog.version)

    def current(self) -> RuleCatalog:
        """Current catalog; raises if none was ever loaded (fail closed)."""
        catalog = self._catalog
        if catalog is None:
            raise RuleCatalogError("No rule catalog loaded; evaluation is unavailable")
        return catalog

    @property
    def is_loaded(self) -> bool:
        return self._catalog is not None

    def publish(self, catalog: RuleCatalog) -> RuleCatalog:
        """Swap in a new catalog, returning the previous one (if any)."""
        if not isinstance(catalog, RuleCatalog):
            raise RuleCatalogError(f"Cannot publish {type(catalog).__name__} as a rule catalog")
        with self._lock:
            previous = self._catalog
            self._catalog = catalog
            self._history.append(catalog.version)
        logger.info(
            f"Published rule catalog {catalog.version}"
            + (f" (replacing {previous.version})" if previous else "")
        )
        return previous

    def reload(self, path: Union[str, Path]) -> RuleCatalog:
        """Load a catalog file and publish it.

        On failure the current catalog stays in place and the error is raised.
        """
        try:
            catalog = load_catalog(path)
        except RuleCatalogError:
            logger.error(f"Catalog reload from {path} failed; keeping current catalog")
            raise
        self.publish(catalog)
        return catalog

    @property
    def history(self) -> List[str]:
        return list(self._history)
