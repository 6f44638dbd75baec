"""
Changeset audit model.

Changesets provide an immutable, append-only trail of how each tracked save
moved an item's QA state.
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from qa_workflow.database import Base


class Changeset(Base):
    """
    Before/after record of one tracked save.

    Invariants:
    - Once written, never edited or deleted
    - Exactly one per successful save_with_changeset
    - contents holds {"before": {...}, "after": {...}, "diff": {...}}
    """
    __tablename__ = "changesets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    contents = Column(JSON, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    node_id = Column(Integer, ForeignKey("nodes.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    node = relationship("Node", back_populates="changesets")

    @property
    def before(self) -> Dict[str, Any]:
        return self.contents["before"]

    @property
    def after(self) -> Dict[str, Any]:
        return self.contents["after"]

    @property
    def diff(self) -> Dict[str, Any]:
        return self.contents["diff"]


def qa_state_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Entries of `before` whose value differs in, or is missing from, `after`."""
    return {
        key: value
        for key, value in before.items()
        if key not in after or after[key] != value
    }
