"""Errors raised by the QA workflow services."""
from typing import Dict, List, Optional

from qa_workflow.i18n import translate


class QaWorkflowError(Exception):
    """Base class; `message` is safe to show to users."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class SaveFailure(QaWorkflowError):
    """
    Raised when a record could not be persisted.

    `errors` carries the field-level validation errors, if any.
    """

    def __init__(self, record: str, errors: Optional[Dict[str, List[str]]] = None,
                 reason: Optional[str] = None, locale: Optional[str] = None):
        self.record = record
        self.errors = errors or {}
        details = reason or "; ".join(
            message for messages in self.errors.values() for message in messages
        ) or "unknown error"
        super().__init__(translate("Failed to save {record}: {details}", locale,
                                   record=record, details=details))


class TransitionDenied(QaWorkflowError):
    """
    Raised when a status change is refused because its permission flag is not set.

    This is the state machine working correctly, not a crash.
    """

    def __init__(self, status: str, flag: Optional[str], message: str):
        self.status = status
        self.flag = flag
        super().__init__(message)


class MissingAttribute(QaWorkflowError):
    """Raised when a model lacks the attribute a QA operation needs (configuration error)."""

    def __init__(self, model: str, attribute: str):
        self.model = model
        self.attribute = attribute
        super().__init__(f"{model} does not have an attribute '{attribute}'.")
