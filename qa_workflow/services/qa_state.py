"""
QA state controller.

Drives the draft → reviewable → publishable → published workflow of content
items and wraps content saves in a transaction that records a changeset.

Usage:
    qa = QaStateController(db)
    article.title = "New title"
    article.scenario = ScenarioKey.for_step("info", "draft")
    if not qa.save_with_changeset(article, user_id="user_123"):
        print(article.errors)
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from qa_workflow.config import settings
from qa_workflow.i18n import translate
from qa_workflow.models.audit import Changeset, qa_state_diff
from qa_workflow.models.domain import Group, Node, NodeHasGroup, QaState
from qa_workflow.models.enums import (
    REQUIREMENT_TIERS,
    QaStatus,
    ScenarioKind,
    ValidationTier,
    Visibility,
)
from qa_workflow.models.item import QaTrackable
from qa_workflow.services.errors import MissingAttribute, SaveFailure, TransitionDenied
from qa_workflow.services.rules import ScenarioKey
from qa_workflow.services.validation import ProgressEvaluator, invalid_fields, snapshot_item, validate

logger = logging.getLogger(__name__)

# Status → permission flag that must be set to enter it
_GUARDED_STATUSES = {
    QaStatus.REVIEWABLE: (ValidationTier.REVIEWABLE, "allow_review"),
    QaStatus.PUBLISHABLE: (ValidationTier.PUBLISHABLE, "allow_publish"),
}

# Item attributes written together with the QA state
_QA_LINK_ATTRIBUTES = ("qa_state", "qa_state_id")


class QaStateController:
    """Enforces QA status transitions and tracked saves. One instance per request."""

    def __init__(self, db: Session, languages: Optional[Sequence[str]] = None, locale: Optional[str] = None):
        self.db = db
        self.languages = list(languages) if languages is not None else settings.translation_languages
        self.locale = locale
        self._evaluators: Dict[object, ProgressEvaluator] = {}

    # Companion records

    def qa_state_attribute(self, item) -> str:
        """Name of the item's `<table>_qa_state_id` attribute."""
        column_name = f"{item.__tablename__}_qa_state_id"
        for attribute in sa_inspect(type(item)).column_attrs:
            if any(column.name == column_name for column in attribute.columns):
                return attribute.key
        raise MissingAttribute(type(item).__name__, column_name)

    def ensure_qa_state(self, item) -> QaState:
        self.qa_state_attribute(item)
        if item.qa_state is None:
            item.qa_state = QaState(status=QaStatus.DRAFT, allow_review=False, allow_publish=False)
            self.db.add(item.qa_state)
        return item.qa_state

    def ensure_node(self, item) -> Node:
        if item.node is None:
            item.node = Node()
            self.db.add(item.node)
        return item.node

    # Validation

    def _evaluator(self, item) -> ProgressEvaluator:
        if item not in self._evaluators:
            self._evaluators[item] = ProgressEvaluator(snapshot_item(item, self.languages))
        return self._evaluators[item]

    def validation_progress(self, item, scenario: ScenarioKey) -> int:
        """Percentage of the scenario's fields that validate; memoized until the next refresh."""
        return self._evaluator(item).progress(scenario)

    def invalid_fields(self, item, scenario: ScenarioKey) -> List[str]:
        return self._evaluator(item).invalid_fields(scenario)

    def valid_status(self, item, tier) -> bool:
        """Whether the item's current values satisfy a status tier."""
        snapshot = snapshot_item(item, self.languages)
        return not invalid_fields(snapshot, ScenarioKey.for_status(tier))

    def refresh_qa_state(self, item, scenarios: Optional[Iterable[ScenarioKey]] = None) -> QaState:
        """
        Recompute the derived progress columns of the item's QA state.

        `scenarios` limits the work to the given status and translation
        scenarios; by default every tier and language is recalculated.
        """
        qa_state = self.ensure_qa_state(item)
        evaluator = ProgressEvaluator(snapshot_item(item, self.languages))
        self._evaluators[item] = evaluator

        if scenarios is None:
            scenarios = [ScenarioKey.for_status(tier) for tier in REQUIREMENT_TIERS]
            scenarios += [ScenarioKey.for_translation(lang) for lang in self.languages]

        translations_progress = dict(qa_state.translations_progress or {})
        for scenario in scenarios:
            if scenario.kind == ScenarioKind.STATUS and scenario.tier in REQUIREMENT_TIERS:
                setattr(qa_state, f"{scenario.tier.value}_validation_progress", evaluator.progress(scenario))
            elif scenario.kind == ScenarioKind.TRANSLATION:
                translations_progress[scenario.language] = evaluator.progress(scenario)
        qa_state.translations_progress = translations_progress

        return qa_state

    # Status transitions

    def _guard(self, item, status: QaStatus) -> None:
        if status not in _GUARDED_STATUSES:
            return
        tier, flag = _GUARDED_STATUSES[status]
        errors = validate(snapshot_item(item, self.languages), ScenarioKey.for_status_check(tier), self.locale)
        if errors:
            message = errors["status"][0]
            logger.info(
                "Status change refused: %s", message,
                extra={"event_type": "qa.transition_denied", "item_type": type(item).__name__,
                       "item_id": item.id, "status": status.value}
            )
            raise TransitionDenied(status.value, flag, message)

    def _commit(self, record: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SaveFailure(record, reason=str(e), locale=self.locale) from e

    def _hold_item_edits(self, item) -> Optional[Dict[str, object]]:
        """
        Take the item's unsaved edits out of the session.

        Returns the held values (None for an item not yet persisted, which
        is expunged instead). The link to the QA state is not held.
        """
        state = sa_inspect(item)
        if state.pending:
            self.db.expunge(item)
            return None
        if not state.persistent:
            return {}
        held = {
            attr.key: attr.value
            for attr in state.attrs
            if attr.key not in _QA_LINK_ATTRIBUTES and attr.history.has_changes()
        }
        if held:
            # Expiring an attribute discards its pending change
            self.db.expire(item, list(held))
        return held

    def _restore_item_edits(self, item, held: Optional[Dict[str, object]]) -> None:
        if held is None:
            self.db.add(item)
            return
        for key, value in held.items():
            setattr(item, key, value)

    def _commit_qa_records(self, item, record: str) -> None:
        """Commit QA state and visibility rows only; the item's own edits stay unsaved."""
        held = self._hold_item_edits(item)
        try:
            self._commit(record)
        finally:
            self._restore_item_edits(item, held)

    def change_status(self, item, status) -> QaState:
        """
        Change the item's QA status and persist it.

        Raises:
            MissingAttribute: the item is not QA-tracked
            TransitionDenied: the permission flag for the new status is not set
            SaveFailure: the QA state could not be persisted
        """
        status = QaStatus(status)
        qa_state = self.ensure_qa_state(item)
        self._guard(item, status)

        previous = qa_state.status
        qa_state.status = status
        self._commit_qa_records(item, "QaState")

        logger.info(
            "Status changed from %s to %s", previous.value if previous else None, status.value,
            extra={"event_type": "qa.status_changed", "item_type": type(item).__name__,
                   "item_id": item.id, "status": status.value}
        )
        return qa_state

    def update_permissions(self, item, allow_review: Optional[bool] = None,
                           allow_publish: Optional[bool] = None) -> QaState:
        """Set the review/publish permission flags of the item's QA state."""
        qa_state = self.ensure_qa_state(item)
        if allow_review is not None:
            qa_state.allow_review = allow_review
        if allow_publish is not None:
            qa_state.allow_publish = allow_publish
        self._commit_qa_records(item, "QaState")
        return qa_state

    # Saving

    def _persist_item(self, item) -> None:
        """Validate the item against its active scenario and flush it."""
        if item.scenario is not None:
            errors = validate(snapshot_item(item, self.languages), item.scenario, self.locale)
            if errors:
                raise SaveFailure(self.item_label(item), errors, locale=self.locale)
        self.ensure_node(item)
        self.db.add(item)
        self.db.flush()

    def _persist_changeset(self, changeset: Changeset) -> None:
        if changeset.user_id is None or str(changeset.user_id).strip() == "":
            raise SaveFailure(
                "Changeset",
                {"user_id": [translate("{attribute} cannot be blank.", self.locale, attribute="user_id")]},
                locale=self.locale,
            )
        self.db.add(changeset)
        self.db.flush()

    def _record_failure(self, item, error: Exception) -> None:
        if isinstance(error, SaveFailure):
            item.add_error("id", error.message)
            for attribute, messages in error.errors.items():
                if attribute != "id":
                    item.errors.setdefault(attribute, []).extend(messages)
        else:
            item.add_error("id", str(error))
        logger.warning(
            "Save failed: %s", error,
            extra={"event_type": "qa.save_failed", "item_type": type(item).__name__, "item_id": item.id}
        )

    def save_with_changeset(self, item, user_id: Optional[str],
                            scenarios: Optional[Iterable[ScenarioKey]] = None) -> bool:
        """
        Save the item and record a changeset of its QA state, atomically.

        Failures are not raised: the transaction is rolled back, the error is
        added to `item.errors` and False is returned.
        """
        item.clear_errors()
        qa_state = self.ensure_qa_state(item)
        if scenarios is not None:
            scenarios = list(scenarios)

        try:
            # Start from the stored QA state, not whatever is in memory
            if sa_inspect(qa_state).persistent:
                self.db.refresh(qa_state)
            before = qa_state.attributes()

            self._persist_item(item)

            self.refresh_qa_state(item, scenarios)
            self.db.flush()
            after = qa_state.attributes()

            contents = {
                "before": before,
                "after": after,
                "diff": qa_state_diff(before, after),
            }
            logger.debug(
                "Changeset: %s", contents,
                extra={"event_type": "qa.changeset", "item_type": type(item).__name__,
                       "item_id": item.id, "user_id": user_id}
            )

            changeset = Changeset(contents=contents, user_id=user_id, node_id=item.node.id)
            self._persist_changeset(changeset)

            self.db.commit()
        except (SaveFailure, SQLAlchemyError) as e:
            self.db.rollback()
            self._evaluators.pop(item, None)
            self._record_failure(item, e)
            return False

        return True

    def save_appropriately(self, item, user_id: Optional[str] = None) -> bool:
        """Save QA-tracked items with a changeset and other items plainly."""
        if isinstance(item, QaTrackable):
            return self.save_with_changeset(item, user_id)

        item.clear_errors()
        try:
            self._persist_item(item)
            self.db.commit()
        except (SaveFailure, SQLAlchemyError) as e:
            self.db.rollback()
            self._record_failure(item, e)
            return False
        return True

    # Visibility

    def _node_has_groups(self, item, visibility: Optional[Visibility] = None) -> List[NodeHasGroup]:
        if item.node_id is None:
            return []
        query = self.db.query(NodeHasGroup).filter(NodeHasGroup.node_id == item.node_id)
        if visibility is not None:
            query = query.filter(NodeHasGroup.visibility == visibility)
        return query.all()

    def belongs_to_at_least_one_group(self, item) -> bool:
        return bool(self._node_has_groups(item))

    def belongs_to_group(self, item, group_name: str) -> bool:
        if item.node_id is None:
            return False
        join = self.db.query(NodeHasGroup).join(Group).filter(
            NodeHasGroup.node_id == item.node_id,
            Group.name == group_name
        ).first()
        return join is not None

    def is_visible(self, item) -> bool:
        """Visible to anonymous users: at least one visible group join."""
        return bool(self._node_has_groups(item, Visibility.VISIBLE))

    def is_published(self, item) -> bool:
        return self.is_visible(item)

    def is_publishable(self, item) -> bool:
        """Valid for publishable, in at least one group and not already published."""
        if not isinstance(item, QaTrackable):
            return False
        return (
            self.valid_status(item, ValidationTier.PUBLISHABLE)
            and self.belongs_to_at_least_one_group(item)
            and not self.is_published(item)
        )

    def is_unpublishable(self, item) -> bool:
        return self.belongs_to_at_least_one_group(item) and self.is_published(item)

    def _set_visibility(self, item, visible: bool) -> None:
        for node_has_group in self._node_has_groups(item):
            if visible:
                node_has_group.make_visible()
            else:
                node_has_group.make_hidden()

    def make_node_has_group_visible(self, item) -> None:
        """Make every group join of the item's node visible. No-op without a node."""
        self._set_visibility(item, True)
        self._commit_qa_records(item, "NodeHasGroup")

    def make_node_has_group_hidden(self, item) -> None:
        """Hide every group join of the item's node. No-op without a node."""
        self._set_visibility(item, False)
        self._commit_qa_records(item, "NodeHasGroup")

    def publish(self, item) -> QaState:
        """Make the item visible in its groups and mark it published."""
        if not self.is_publishable(item):
            raise TransitionDenied(QaStatus.PUBLISHED.value, None,
                                   translate("Item is not publishable", self.locale))
        qa_state = self.ensure_qa_state(item)
        self._set_visibility(item, True)
        qa_state.status = QaStatus.PUBLISHED
        self._commit_qa_records(item, "QaState")
        logger.info(
            "Item published",
            extra={"event_type": "qa.published", "item_type": type(item).__name__, "item_id": item.id}
        )
        return qa_state

    def unpublish(self, item) -> QaState:
        """Hide the item in its groups; it goes back to publishable."""
        if not self.is_unpublishable(item):
            raise TransitionDenied(QaStatus.PUBLISHABLE.value, None,
                                   translate("Item is not published", self.locale))
        qa_state = self.ensure_qa_state(item)
        self._set_visibility(item, False)
        qa_state.status = QaStatus.PUBLISHABLE
        self._commit_qa_records(item, "QaState")
        logger.info(
            "Item unpublished",
            extra={"event_type": "qa.unpublished", "item_type": type(item).__name__, "item_id": item.id}
        )
        return qa_state

    # Workflow helpers

    def first_flow_step(self, item) -> Optional[str]:
        if item.first_flow_step_override is not None:
            return item.first_flow_step_override
        for step in item.flow_steps:
            return str(step)
        return None

    def first_translation_flow_step(self, item) -> Optional[str]:
        """First step with a currently translatable field, else the first flow step."""
        config = item.translation_config(item.field_values())
        for step, fields in item.flow_steps.items():
            if any(field in config.currently_translatable for field in fields):
                return str(step)
        return self.first_flow_step(item)

    def item_label(self, item) -> str:
        label = translate(item.class_label, self.locale)
        if item.id is None:
            return label
        return f"{label} #{item.id}"

    def attribute_hint(self, item, attribute: str) -> Optional[str]:
        hint = item.attribute_hints.get(attribute)
        return translate(hint, self.locale) if hint else None
