"""Enums for the QA workflow - these define the valid values for statuses, scenarios and validators."""
from enum import Enum


class QaStatus(str, Enum):
    """The four statuses a QA state can be in. No other statuses are allowed."""
    DRAFT = "draft"
    REVIEWABLE = "reviewable"
    PUBLISHABLE = "publishable"
    PUBLISHED = "published"

    @classmethod
    def _missing_(cls, value):
        # Older records store "public" for published items
        if value == "public":
            return cls.PUBLISHED
        return None


class ValidationTier(str, Enum):
    """Status tiers a scenario can be validated against."""
    TEMPORARY = "temporary"
    DRAFT = "draft"
    REVIEWABLE = "reviewable"
    PUBLISHABLE = "publishable"


# Tiers that carry status requirements, lowest first
REQUIREMENT_TIERS = (
    ValidationTier.DRAFT,
    ValidationTier.REVIEWABLE,
    ValidationTier.PUBLISHABLE,
)


class ScenarioKind(str, Enum):
    """What a validation scenario is about."""
    STATUS = "status"                      # whole record against a status tier
    STATUS_CHECK = "status_check"          # permission flag guarding a status change
    STEP = "step"                          # one workflow step, optionally at a tier
    STEP_PROGRESS = "step_progress"        # completion of one workflow step
    TRANSLATION = "translation"            # translation into one language
    TRANSLATION_STEP = "translation_step"  # one workflow step of a translation


class ValidatorKind(str, Enum):
    """Validators a rule can apply."""
    SAFE = "safe"
    REQUIRED = "required"
    COMPARE = "compare"
    STATUS_ALLOWED = "status_allowed"
    RELATED_TRANSLATION = "related_translation"


class Visibility(str, Enum):
    """Visibility of an item's node within a group."""
    VISIBLE = "visible"
    HIDDEN = "hidden"
