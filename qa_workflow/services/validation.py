"""
Pure validation over item snapshots.

A snapshot freezes an item's field values together with the rules derived for
them. Validation and progress are computed from the snapshot alone, so the
item itself is never cloned or mutated.
"""
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from qa_workflow.i18n import translate
from qa_workflow.models.enums import ValidatorKind
from qa_workflow.services.rules import RuleDescriptor, ScenarioKey, is_empty


class ItemSnapshot(BaseModel):
    """Immutable view of an item's values, rules and QA permission flags."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    values: Dict[str, Any]
    rules: List[RuleDescriptor]
    qa_flags: Dict[str, bool] = {}


def snapshot_item(item, languages: Sequence[str] = ()) -> ItemSnapshot:
    """Snapshot an item; related items held by its fields are snapshotted too."""
    values = item.field_values(languages)
    rules = item.validation_rules(values, languages)

    for field, value in values.items():
        if _is_item(value):
            values[field] = snapshot_item(value, languages)
        elif isinstance(value, (list, tuple)) and value and all(_is_item(v) for v in value):
            values[field] = tuple(snapshot_item(v, languages) for v in value)

    qa_state = getattr(item, "qa_state", None)
    qa_flags = {}
    if qa_state is not None:
        qa_flags = {
            "allow_review": bool(qa_state.allow_review),
            "allow_publish": bool(qa_state.allow_publish),
        }

    return ItemSnapshot(values=values, rules=rules, qa_flags=qa_flags)


def _is_item(value) -> bool:
    return hasattr(value, "field_values") and hasattr(value, "validation_rules")


def _related_translated(value, scenario: ScenarioKey) -> bool:
    if isinstance(value, ItemSnapshot):
        related = [value]
    elif isinstance(value, tuple):
        related = list(value)
    else:
        return False
    if not related:
        return False
    into = ScenarioKey.for_translation(scenario.language)
    return all(not invalid_fields(snapshot, into) for snapshot in related)


def _check(rule: RuleDescriptor, attribute: str, snapshot: ItemSnapshot,
           scenario: ScenarioKey, locale: Optional[str]) -> Optional[str]:
    """Error message for one attribute under one rule, or None when it passes."""
    value = snapshot.values.get(attribute)

    if rule.kind == ValidatorKind.SAFE:
        return None
    if rule.kind == ValidatorKind.REQUIRED:
        if is_empty(value):
            return translate("{attribute} cannot be blank.", locale, attribute=attribute)
        return None
    if rule.kind == ValidatorKind.COMPARE:
        if value != rule.params.get("compare_value"):
            return translate("{attribute} is invalid.", locale, attribute=attribute)
        return None
    if rule.kind == ValidatorKind.STATUS_ALLOWED:
        if not snapshot.qa_flags.get(rule.params["flag"], False):
            return translate(rule.params["message"], locale)
        return None
    if rule.kind == ValidatorKind.RELATED_TRANSLATION:
        if not _related_translated(value, scenario):
            return translate("{attribute} is not translated into {language}.", locale,
                             attribute=attribute, language=scenario.language)
        return None
    raise ValueError(f"Unknown validator: {rule.kind}")


def validate(snapshot: ItemSnapshot, scenario: ScenarioKey, locale: Optional[str] = None) -> Dict[str, List[str]]:
    """Validate a snapshot in a scenario. Returns {attribute: [messages]} for failing attributes."""
    errors: Dict[str, List[str]] = {}
    for rule in snapshot.rules:
        if not rule.applies_to(scenario):
            continue
        for attribute in rule.attributes:
            message = _check(rule, attribute, snapshot, scenario, locale)
            if message is not None:
                errors.setdefault(attribute, []).append(message)
    return errors


def invalid_fields(snapshot: ItemSnapshot, scenario: ScenarioKey) -> FrozenSet[str]:
    return frozenset(validate(snapshot, scenario))


def applicable_fields(snapshot: ItemSnapshot, scenario: ScenarioKey) -> List[str]:
    """Attributes with at least one non-safe rule in the scenario, in rule order."""
    fields: Dict[str, None] = {}
    for rule in snapshot.rules:
        if rule.kind == ValidatorKind.SAFE or not rule.applies_to(scenario):
            continue
        for attribute in rule.attributes:
            fields[attribute] = None
    return list(fields)


def calculate_progress(snapshot: ItemSnapshot, scenario: ScenarioKey) -> int:
    """
    Percentage (0-100, rounded down) of the scenario's applicable fields that validate.

    A scenario without applicable fields is complete.
    """
    fields = applicable_fields(snapshot, scenario)
    if not fields:
        return 100
    invalid = invalid_fields(snapshot, scenario)
    valid = sum(1 for field in fields if field not in invalid)
    return valid * 100 // len(fields)


class ProgressEvaluator:
    """Progress per scenario for one snapshot, computed at most once per scenario."""

    def __init__(self, snapshot: ItemSnapshot):
        self.snapshot = snapshot
        self._progress: Dict[ScenarioKey, int] = {}

    def progress(self, scenario: ScenarioKey) -> int:
        if scenario not in self._progress:
            self._progress[scenario] = calculate_progress(self.snapshot, scenario)
        return self._progress[scenario]

    def invalid_fields(self, scenario: ScenarioKey) -> List[str]:
        invalid = invalid_fields(self.snapshot, scenario)
        return [field for field in applicable_fields(self.snapshot, scenario) if field in invalid]
