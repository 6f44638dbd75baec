"""
Validation rule derivation.

Turns an item type's workflow steps, status requirements and translation
configuration into the flat list of rules that decide which fields are
accepted or required in each scenario. Derivation is pure: the same
configuration always yields the same rules, whatever the field order.

Usage:
    from qa_workflow.services.rules import derive_rules, ScenarioKey

    rules = derive_rules(
        {"info": ["title", "slug"], "content": ["body"]},
        {"draft": ["title"], "publishable": ["title", "slug", "body"]},
        TranslationConfig.from_values(attributes, values),
        ["es", "de"],
    )
"""
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict

from qa_workflow.models.enums import (
    REQUIREMENT_TIERS,
    ScenarioKind,
    ValidationTier,
    ValidatorKind,
)

# Compared against "id" when nothing can be translated yet, so translation
# progress is 0% by construction.
UNREACHABLE_VALUE = "__untranslatable__"

IDENTITY_ATTRIBUTE = "id"


def _tier(value) -> ValidationTier:
    return ValidationTier(getattr(value, "value", value))


class ScenarioKey(BaseModel):
    """
    Structured name of a validation scenario.

    Two keys select the same rules iff they are equal field by field.
    """
    model_config = ConfigDict(frozen=True)

    kind: ScenarioKind
    tier: Optional[ValidationTier] = None
    step: Optional[str] = None
    language: Optional[str] = None

    @classmethod
    def for_status(cls, tier) -> "ScenarioKey":
        return cls(kind=ScenarioKind.STATUS, tier=_tier(tier))

    @classmethod
    def for_status_check(cls, tier) -> "ScenarioKey":
        return cls(kind=ScenarioKind.STATUS_CHECK, tier=_tier(tier))

    @classmethod
    def for_step(cls, step, tier=None) -> "ScenarioKey":
        return cls(
            kind=ScenarioKind.STEP,
            step=str(step),
            tier=_tier(tier) if tier is not None else None,
        )

    @classmethod
    def for_step_progress(cls, step) -> "ScenarioKey":
        return cls(kind=ScenarioKind.STEP_PROGRESS, step=str(step))

    @classmethod
    def for_translation(cls, language: str) -> "ScenarioKey":
        return cls(kind=ScenarioKind.TRANSLATION, language=language)

    @classmethod
    def for_translation_step(cls, language: str, step) -> "ScenarioKey":
        return cls(kind=ScenarioKind.TRANSLATION_STEP, language=language, step=str(step))

    def __str__(self) -> str:
        if self.kind == ScenarioKind.STATUS:
            return self.tier.value
        if self.kind == ScenarioKind.STATUS_CHECK:
            return f"status_{self.tier.value}"
        if self.kind == ScenarioKind.STEP:
            if self.tier is None:
                return f"step_{self.step}"
            return f"{self.tier.value}-step_{self.step}"
        if self.kind == ScenarioKind.STEP_PROGRESS:
            return f"step_{self.step}-total_progress"
        if self.kind == ScenarioKind.TRANSLATION:
            return f"into_{self.language}"
        return f"into_{self.language}-step_{self.step}"


class RuleDescriptor(BaseModel):
    """One validator applied to some attributes in a set of scenarios."""
    model_config = ConfigDict(frozen=True)

    attributes: Tuple[str, ...]
    kind: ValidatorKind
    scenarios: FrozenSet[ScenarioKey]
    params: Dict[str, Any] = {}

    def applies_to(self, scenario: ScenarioKey) -> bool:
        return scenario in self.scenarios


class TranslationAttribute(BaseModel):
    """
    A translatable field.

    `source_attribute` names the source-language field (the field itself when
    omitted). A recursive attribute holds related items whose own translation
    rules decide whether it is translated.
    """
    model_config = ConfigDict(frozen=True)

    source_attribute: Optional[str] = None
    recursive: bool = False

    def source_for(self, field: str) -> str:
        return self.source_attribute or field


class TranslationConfig(BaseModel):
    """Translatable attributes of an item type and which of them currently have source content."""
    model_config = ConfigDict(frozen=True)

    attributes: Dict[str, TranslationAttribute] = {}
    currently_translatable: FrozenSet[str] = frozenset()

    @classmethod
    def from_values(
        cls,
        attributes: Mapping[str, TranslationAttribute],
        values: Mapping[str, Any],
    ) -> "TranslationConfig":
        translatable = frozenset(
            field for field, attribute in attributes.items()
            if not is_empty(values.get(attribute.source_for(field)))
        )
        return cls(attributes=dict(attributes), currently_translatable=translatable)


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections are empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _normalize_requirements(status_requirements: Mapping) -> Dict[ValidationTier, List[str]]:
    return {_tier(tier): list(fields or []) for tier, fields in status_requirements.items()}


def _required_tiers(field: str, requirements: Dict[ValidationTier, List[str]]) -> Tuple[ValidationTier, ...]:
    """The tier at which `field` first becomes required, and every tier above it."""
    for index, tier in enumerate(REQUIREMENT_TIERS):
        if field in requirements.get(tier, ()):
            return REQUIREMENT_TIERS[index:]
    return ()


def status_requirement_rules(status_requirements: Mapping) -> List[RuleDescriptor]:
    """
    Whole-record rules for each status tier.

    Tiers without requirements fall back to the identity attribute so that
    every status stays reachable.
    """
    requirements = _normalize_requirements(status_requirements)

    rules = []
    for index, tier in enumerate(REQUIREMENT_TIERS):
        fields = requirements.get(tier) or [IDENTITY_ATTRIBUTE]
        rules.append(RuleDescriptor(
            attributes=tuple(fields),
            kind=ValidatorKind.REQUIRED,
            scenarios=frozenset(ScenarioKey.for_status(t) for t in REQUIREMENT_TIERS[index:]),
        ))

    # Permission flags guarding status changes
    rules.append(RuleDescriptor(
        attributes=("status",),
        kind=ValidatorKind.STATUS_ALLOWED,
        scenarios=frozenset([ScenarioKey.for_status_check(ValidationTier.REVIEWABLE)]),
        params={"flag": "allow_review", "message": "Reviewing not marked as allowed"},
    ))
    rules.append(RuleDescriptor(
        attributes=("status",),
        kind=ValidatorKind.STATUS_ALLOWED,
        scenarios=frozenset([ScenarioKey.for_status_check(ValidationTier.PUBLISHABLE)]),
        params={"flag": "allow_publish", "message": "Publishing not marked as allowed"},
    ))
    return rules


def flow_step_rules(flow_steps: Mapping, status_requirements: Optional[Mapping] = None) -> List[RuleDescriptor]:
    """Step-scoped rules: accept every field of a step, require it from its minimal tier on."""
    requirements = _normalize_requirements(status_requirements or {})

    rules = []
    for step, fields in flow_steps.items():
        edit_scenario = ScenarioKey.for_step(step)
        for field in fields:
            rules.append(RuleDescriptor(
                attributes=(field,),
                kind=ValidatorKind.SAFE,
                scenarios=frozenset(
                    [ScenarioKey.for_step(step, tier) for tier in ValidationTier] + [edit_scenario]
                ),
            ))

            tiers = _required_tiers(field, requirements)
            if tiers:
                rules.append(RuleDescriptor(
                    attributes=(field,),
                    kind=ValidatorKind.REQUIRED,
                    scenarios=frozenset(
                        [ScenarioKey.for_step(step, tier) for tier in tiers] + [edit_scenario]
                    ),
                ))

            # Only used to compute how complete the step is
            rules.append(RuleDescriptor(
                attributes=(field,),
                kind=ValidatorKind.REQUIRED,
                scenarios=frozenset([ScenarioKey.for_step_progress(step)]),
            ))

    return rules


def translation_rules(
    flow_steps: Mapping,
    translation_config: TranslationConfig,
    languages: Sequence[str],
) -> List[RuleDescriptor]:
    """Rules deciding whether an item is translated into each language."""
    step_of: Dict[str, str] = {}
    for step, fields in flow_steps.items():
        for field in fields:
            step_of.setdefault(field, str(step))

    translatable = [
        field for field in translation_config.attributes
        if field in translation_config.currently_translatable
    ]

    if not translatable:
        if not languages:
            return []
        return [RuleDescriptor(
            attributes=(IDENTITY_ATTRIBUTE,),
            kind=ValidatorKind.COMPARE,
            scenarios=frozenset(ScenarioKey.for_translation(lang) for lang in languages),
            params={"compare_value": UNREACHABLE_VALUE},
        )]

    rules = []
    for field in translatable:
        attribute = translation_config.attributes[field]
        step = step_of.get(field)
        for lang in languages:
            if attribute.recursive:
                scenarios = [ScenarioKey.for_translation(lang)]
                if step is not None:
                    scenarios.append(ScenarioKey.for_translation_step(lang, step))
                rules.append(RuleDescriptor(
                    attributes=(field,),
                    kind=ValidatorKind.RELATED_TRANSLATION,
                    scenarios=frozenset(scenarios),
                ))
                continue

            translated = f"{field}_{lang}"
            if step is not None:
                rules.append(RuleDescriptor(
                    attributes=(translated,),
                    kind=ValidatorKind.SAFE,
                    scenarios=frozenset([ScenarioKey.for_translation_step(lang, step)]),
                ))
            rules.append(RuleDescriptor(
                attributes=(translated,),
                kind=ValidatorKind.REQUIRED,
                scenarios=frozenset([ScenarioKey.for_translation(lang)]),
            ))

    return rules


def derive_rules(
    flow_steps: Mapping,
    status_requirements: Optional[Mapping] = None,
    translation_config: Optional[TranslationConfig] = None,
    languages: Sequence[str] = (),
) -> List[RuleDescriptor]:
    """
    Derive the ordered rule list for one item type.

    `status_requirements` is None for items that are not QA-tracked; those get
    no status rules. `translation_config` is None for items that are never
    translated.
    """
    rules: List[RuleDescriptor] = []
    if status_requirements is not None:
        rules.extend(status_requirement_rules(status_requirements))
    rules.extend(flow_step_rules(flow_steps, status_requirements))
    if translation_config is not None:
        rules.extend(translation_rules(flow_steps, translation_config, languages))
    return rules


def rule_triples(rules: Iterable[RuleDescriptor]) -> Set[Tuple[str, ValidatorKind, ScenarioKey]]:
    """Flatten rules into (attribute, validator, scenario) triples."""
    return {
        (attribute, rule.kind, scenario)
        for rule in rules
        for attribute in rule.attributes
        for scenario in rule.scenarios
    }
