"""
Item mixins.

Every content item mixes in ItemMixin; items that go through quality
assurance also mix in QaTrackable, which gives them a QA state companion.
"""
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON
from sqlalchemy.orm import declared_attr, relationship

from qa_workflow.services.rules import (
    IDENTITY_ATTRIBUTE,
    RuleDescriptor,
    TranslationAttribute,
    TranslationConfig,
    derive_rules,
)


class ItemMixin:
    """
    Columns and configuration shared by all content items.

    Configuration (class level, read-only at runtime):
    - flow_steps: ordered {step: [fields]} for staged data entry
    - status_requirements: {draft|reviewable|publishable: [fields]}
    - translatable_attributes: {field: TranslationAttribute}
    """
    class_label: ClassVar[str] = "Item"
    flow_steps: ClassVar[Dict[str, List[str]]] = {}
    status_requirements: ClassVar[Dict[str, List[str]]] = {}
    translatable_attributes: ClassVar[Dict[str, TranslationAttribute]] = {}
    first_flow_step_override: ClassVar[Optional[str]] = None
    attribute_hints: ClassVar[Dict[str, str]] = {}

    # Active validation scenario for the next save (not persisted)
    scenario = None
    _errors = None

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    translations = Column(JSON, nullable=True)  # {language: {field: value}}
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def node_id(cls):
        return Column(Integer, ForeignKey("nodes.id"), nullable=True)

    @declared_attr
    def node(cls):
        return relationship("Node")

    # Errors

    @property
    def errors(self) -> Dict[str, List[str]]:
        if self._errors is None:
            self._errors = {}
        return self._errors

    def add_error(self, attribute: str, message: str) -> None:
        self.errors.setdefault(attribute, []).append(message)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def clear_errors(self) -> None:
        self._errors = {}

    # Field access

    def translation(self, field: str, language: str) -> Any:
        return (self.translations or {}).get(language, {}).get(field)

    def set_translation(self, field: str, language: str, value: Any) -> None:
        """Store a translated value (reassigns the JSON column so the change is tracked)."""
        translations = {lang: dict(values) for lang, values in (self.translations or {}).items()}
        translations.setdefault(language, {})[field] = value
        self.translations = translations

    def configured_fields(self) -> List[str]:
        """Every field named by the item's configuration, in first-seen order."""
        fields = [IDENTITY_ATTRIBUTE]
        for step_fields in self.flow_steps.values():
            fields.extend(step_fields)
        for tier_fields in self.status_requirements.values():
            fields.extend(tier_fields)
        for field, attribute in self.translatable_attributes.items():
            fields.extend([field, attribute.source_for(field)])
        return list(dict.fromkeys(fields))

    def field_values(self, languages: Sequence[str] = ()) -> Dict[str, Any]:
        """Current field values, including `<field>_<lang>` translated variants."""
        values = {field: getattr(self, field, None) for field in self.configured_fields()}
        for field, attribute in self.translatable_attributes.items():
            if attribute.recursive:
                continue
            for lang in languages:
                values[f"{field}_{lang}"] = self.translation(field, lang)
        return values

    # Rules

    @classmethod
    def translation_config(cls, values: Mapping[str, Any]) -> TranslationConfig:
        return TranslationConfig.from_values(cls.translatable_attributes, values)

    def validation_rules(self, values: Mapping[str, Any], languages: Sequence[str] = ()) -> List[RuleDescriptor]:
        """Rules for this item given its current values (translatability depends on them)."""
        status_requirements = self.status_requirements if isinstance(self, QaTrackable) else None
        return derive_rules(
            self.flow_steps,
            status_requirements,
            self.translation_config(values),
            languages,
        )


class QaTrackable:
    """
    Capability of items tracked through draft → reviewable → publishable → published.

    The foreign key column is named `<table>_qa_state_id`.
    """

    @declared_attr
    def qa_state_id(cls):
        return Column(f"{cls.__tablename__}_qa_state_id", Integer, ForeignKey("qa_states.id"), nullable=True)

    @declared_attr
    def qa_state(cls):
        return relationship("QaState")
