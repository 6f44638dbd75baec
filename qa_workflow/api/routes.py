"""API routes for the QA workflow of content items."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from qa_workflow.api.schemas import (
    ChangesetResponse,
    ItemSummary,
    ItemUpdate,
    PermissionUpdate,
    ProgressResponse,
    QaStateResponse,
    RefusalResponse,
    RuleResponse,
    SaveFailureResponse,
    ScenarioQuery,
    StatusChange,
)
from qa_workflow.database import get_db
from qa_workflow.models.audit import Changeset
from qa_workflow.models.content import ITEM_TYPES
from qa_workflow.models.enums import ScenarioKind, ValidationTier
from qa_workflow.services.errors import MissingAttribute, SaveFailure, TransitionDenied
from qa_workflow.services.qa_state import QaStateController
from qa_workflow.services.validation import snapshot_item

router = APIRouter()


def _get_item(db: Session, item_type: str, item_id: int):
    model = ITEM_TYPES.get(item_type)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown item type: {item_type}")
    item = db.query(model).filter(model.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


def _summary(qa: QaStateController, item_type: str, item) -> ItemSummary:
    qa_state = getattr(item, "qa_state", None)
    return ItemSummary(
        item_type=item_type,
        id=item.id,
        label=qa.item_label(item),
        node_id=item.node_id,
        qa_state=QaStateResponse.model_validate(qa_state) if qa_state is not None else None,
        is_published=qa.is_published(item),
        is_publishable=qa.is_publishable(item),
        is_unpublishable=qa.is_unpublishable(item),
        first_flow_step=qa.first_flow_step(item),
        first_translation_flow_step=qa.first_translation_flow_step(item),
    )


def _refusal(e: TransitionDenied) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": e.message, "flag": e.flag}
    )


def _save(db: Session, item_type: str, item, update: ItemUpdate) -> ItemSummary:
    """Apply an update to an item and save it; 400 on bad input, 422 when the save is rolled back."""
    writable = {attribute.key for attribute in sa_inspect(type(item)).column_attrs}
    unknown = [field for field in update.values if field not in item.configured_fields() or field not in writable]
    if "id" in update.values or unknown:
        raise HTTPException(status_code=400, detail=f"Fields cannot be written: {', '.join(unknown) or 'id'}")

    if update.scenario is not None:
        try:
            item.scenario = update.scenario.to_key()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    for field, value in update.values.items():
        setattr(item, field, value)
    for language, values in update.translations.items():
        for field, value in values.items():
            item.set_translation(field, language, value)

    qa = QaStateController(db)
    if not qa.save_appropriately(item, update.user_id):
        raise HTTPException(
            status_code=422,
            detail={"message": item.errors["id"][0], "errors": item.errors}
        )
    db.refresh(item)
    return _summary(qa, item_type, item)


@router.post("/items/{item_type}", response_model=ItemSummary, status_code=status.HTTP_201_CREATED, responses={
    422: {"model": SaveFailureResponse, "description": "Save rolled back"}
})
def create_item(item_type: str, update: ItemUpdate, db: Session = Depends(get_db)):
    """Create an item; QA-tracked items start as draft with a first changeset."""
    model = ITEM_TYPES.get(item_type)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown item type: {item_type}")
    return _save(db, item_type, model(), update)


@router.get("/items/{item_type}/{item_id}", response_model=ItemSummary)
def get_item(item_type: str, item_id: int, db: Session = Depends(get_db)):
    """QA summary of an item: status, flags and publish predicates."""
    item = _get_item(db, item_type, item_id)
    return _summary(QaStateController(db), item_type, item)


@router.put("/items/{item_type}/{item_id}", response_model=ItemSummary, responses={
    422: {"model": SaveFailureResponse, "description": "Save rolled back"}
})
def update_item(item_type: str, item_id: int, update: ItemUpdate, db: Session = Depends(get_db)):
    """
    Apply field values and save the item (with a changeset when QA-tracked).

    The save is validated against `scenario` when one is given.
    """
    item = _get_item(db, item_type, item_id)
    return _save(db, item_type, item, update)


@router.get("/items/{item_type}/{item_id}/rules", response_model=List[RuleResponse])
def list_rules(item_type: str, item_id: int, db: Session = Depends(get_db)):
    """Validation rules currently derived for the item."""
    item = _get_item(db, item_type, item_id)
    qa = QaStateController(db)
    snapshot = snapshot_item(item, qa.languages)
    return [RuleResponse.from_rule(rule) for rule in snapshot.rules]


@router.get("/items/{item_type}/{item_id}/progress", response_model=ProgressResponse)
def get_progress(
    item_type: str,
    item_id: int,
    kind: ScenarioKind,
    tier: Optional[ValidationTier] = None,
    step: Optional[str] = None,
    language: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Validation progress of the item in one scenario."""
    item = _get_item(db, item_type, item_id)
    try:
        scenario = ScenarioQuery(kind=kind, tier=tier, step=step, language=language).to_key()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    qa = QaStateController(db)
    return ProgressResponse(
        scenario=str(scenario),
        progress=qa.validation_progress(item, scenario),
        invalid_fields=qa.invalid_fields(item, scenario),
    )


@router.post("/items/{item_type}/{item_id}/status", response_model=QaStateResponse, responses={
    403: {"model": RefusalResponse, "description": "Refusal - permission flag not set"}
})
def change_status(item_type: str, item_id: int, change: StatusChange, db: Session = Depends(get_db)):
    """
    Change an item's QA status.

    WILL REFUSE if:
    - Entering reviewable without allow_review
    - Entering publishable without allow_publish
    """
    item = _get_item(db, item_type, item_id)
    qa = QaStateController(db)
    try:
        return qa.change_status(item, change.status)
    except TransitionDenied as e:
        raise _refusal(e)
    except MissingAttribute as e:
        raise HTTPException(status_code=400, detail=e.message)
    except SaveFailure as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.put("/items/{item_type}/{item_id}/permissions", response_model=QaStateResponse)
def update_permissions(item_type: str, item_id: int, update: PermissionUpdate, db: Session = Depends(get_db)):
    """Set the review/publish permission flags."""
    item = _get_item(db, item_type, item_id)
    qa = QaStateController(db)
    try:
        return qa.update_permissions(item, update.allow_review, update.allow_publish)
    except MissingAttribute as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.post("/items/{item_type}/{item_id}/publish", response_model=ItemSummary, responses={
    403: {"model": RefusalResponse, "description": "Refusal - item not publishable"}
})
def publish(item_type: str, item_id: int, db: Session = Depends(get_db)):
    """Publish an item in all of its groups."""
    item = _get_item(db, item_type, item_id)
    qa = QaStateController(db)
    try:
        qa.publish(item)
    except TransitionDenied as e:
        raise _refusal(e)
    return _summary(qa, item_type, item)


@router.post("/items/{item_type}/{item_id}/unpublish", response_model=ItemSummary, responses={
    403: {"model": RefusalResponse, "description": "Refusal - item not published"}
})
def unpublish(item_type: str, item_id: int, db: Session = Depends(get_db)):
    """Hide a published item in all of its groups."""
    item = _get_item(db, item_type, item_id)
    qa = QaStateController(db)
    try:
        qa.unpublish(item)
    except TransitionDenied as e:
        raise _refusal(e)
    return _summary(qa, item_type, item)


@router.get("/items/{item_type}/{item_id}/changesets", response_model=List[ChangesetResponse])
def list_changesets(item_type: str, item_id: int, db: Session = Depends(get_db)):
    """Changesets recorded for the item's node, newest first."""
    item = _get_item(db, item_type, item_id)
    if item.node_id is None:
        return []
    return db.query(Changeset).filter(
        Changeset.node_id == item.node_id
    ).order_by(Changeset.created_at.desc(), Changeset.id.desc()).all()
