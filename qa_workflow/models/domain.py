"""Domain records shared by every item: nodes, groups, visibility joins and QA states."""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from qa_workflow.database import Base
from qa_workflow.models.enums import QaStatus, Visibility


class Node(Base):
    """
    Grouping and visibility container for an item.

    Every item points at one node; group membership and changesets hang off the node.
    """
    __tablename__ = "nodes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    node_has_groups = relationship("NodeHasGroup", back_populates="node", cascade="all, delete-orphan")
    changesets = relationship("Changeset", back_populates="node")


class Group(Base):
    """A visibility group (e.g. a country or a partner site)."""
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)


class NodeHasGroup(Base):
    """
    Join between a node and a group, carrying the node's visibility in that group.

    An item counts as published as soon as one of its joins is visible.
    """
    __tablename__ = "node_has_groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    node_id = Column(Integer, ForeignKey("nodes.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    visibility = Column(SQLEnum(Visibility), nullable=False, default=Visibility.HIDDEN)

    node = relationship("Node", back_populates="node_has_groups")
    group = relationship("Group")

    def make_visible(self) -> None:
        self.visibility = Visibility.VISIBLE

    def make_hidden(self) -> None:
        self.visibility = Visibility.HIDDEN


class QaState(Base):
    """
    One-to-one companion of a QA-tracked item.

    Invariants:
    - status is only changed through QaStateController.change_status
    - progress columns are derived; they are recomputed on every tracked save
    """
    __tablename__ = "qa_states"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    status = Column(SQLEnum(QaStatus), nullable=False, default=QaStatus.DRAFT)
    allow_review = Column(Boolean, nullable=False, default=False)
    allow_publish = Column(Boolean, nullable=False, default=False)

    # Derived validation progress, 0-100
    draft_validation_progress = Column(Integer, nullable=True)
    reviewable_validation_progress = Column(Integer, nullable=True)
    publishable_validation_progress = Column(Integer, nullable=True)
    translations_progress = Column(JSON, nullable=True)  # {language: percent}

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def attributes(self) -> Dict[str, Any]:
        """Snapshot of the tracked attributes, as stored in changesets."""
        return {
            "id": self.id,
            "status": self.status.value if self.status is not None else None,
            "allow_review": self.allow_review,
            "allow_publish": self.allow_publish,
            "draft_validation_progress": self.draft_validation_progress,
            "reviewable_validation_progress": self.reviewable_validation_progress,
            "publishable_validation_progress": self.publishable_validation_progress,
            "translations_progress": dict(self.translations_progress or {}),
        }
