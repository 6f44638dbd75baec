"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from qa_workflow.models.enums import QaStatus, ScenarioKind, ValidationTier, ValidatorKind
from qa_workflow.services.rules import RuleDescriptor, ScenarioKey


class ScenarioQuery(BaseModel):
    """A validation scenario as sent by clients."""
    kind: ScenarioKind
    tier: Optional[ValidationTier] = None
    step: Optional[str] = None
    language: Optional[str] = None

    def to_key(self) -> ScenarioKey:
        """Build the scenario key; raises ValueError when a required part is missing."""
        needs = {
            ScenarioKind.STATUS: ("tier",),
            ScenarioKind.STATUS_CHECK: ("tier",),
            ScenarioKind.STEP: ("step",),
            ScenarioKind.STEP_PROGRESS: ("step",),
            ScenarioKind.TRANSLATION: ("language",),
            ScenarioKind.TRANSLATION_STEP: ("language", "step"),
        }[self.kind]
        missing = [part for part in needs if getattr(self, part) is None]
        if missing:
            raise ValueError(f"Scenario '{self.kind.value}' needs: {', '.join(missing)}")

        if self.kind == ScenarioKind.STATUS:
            return ScenarioKey.for_status(self.tier)
        if self.kind == ScenarioKind.STATUS_CHECK:
            return ScenarioKey.for_status_check(self.tier)
        if self.kind == ScenarioKind.STEP:
            return ScenarioKey.for_step(self.step, self.tier)
        if self.kind == ScenarioKind.STEP_PROGRESS:
            return ScenarioKey.for_step_progress(self.step)
        if self.kind == ScenarioKind.TRANSLATION:
            return ScenarioKey.for_translation(self.language)
        return ScenarioKey.for_translation_step(self.language, self.step)


# QA state schemas
class QaStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: QaStatus
    allow_review: bool
    allow_publish: bool
    draft_validation_progress: Optional[int]
    reviewable_validation_progress: Optional[int]
    publishable_validation_progress: Optional[int]
    translations_progress: Optional[Dict[str, int]]
    updated_at: datetime


class StatusChange(BaseModel):
    status: QaStatus


class PermissionUpdate(BaseModel):
    allow_review: Optional[bool] = None
    allow_publish: Optional[bool] = None


# Item schemas
class ItemSummary(BaseModel):
    item_type: str
    id: int
    label: str
    node_id: Optional[int]
    qa_state: Optional[QaStateResponse]
    is_published: bool
    is_publishable: bool
    is_unpublishable: bool
    first_flow_step: Optional[str]
    first_translation_flow_step: Optional[str]


class ItemUpdate(BaseModel):
    user_id: str = Field(..., min_length=1)
    values: Dict[str, Any] = {}
    translations: Dict[str, Dict[str, Any]] = {}  # {language: {field: value}}
    scenario: Optional[ScenarioQuery] = None


# Rule / progress schemas
class RuleResponse(BaseModel):
    attributes: List[str]
    kind: ValidatorKind
    scenarios: List[str]
    params: Dict[str, Any]

    @classmethod
    def from_rule(cls, rule: RuleDescriptor) -> "RuleResponse":
        return cls(
            attributes=list(rule.attributes),
            kind=rule.kind,
            scenarios=sorted(str(scenario) for scenario in rule.scenarios),
            params=dict(rule.params),
        )


class ProgressResponse(BaseModel):
    scenario: str
    progress: int
    invalid_fields: List[str]


# Changeset schemas
class ChangesetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    node_id: int
    contents: Dict[str, Any]
    created_at: datetime


# Error responses
class RefusalResponse(BaseModel):
    """Response when a status change is refused."""
    message: str
    flag: Optional[str] = None


class SaveFailureResponse(BaseModel):
    """Response when a save was rolled back."""
    message: str
    errors: Dict[str, List[str]] = {}
