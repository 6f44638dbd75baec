"""Content item types."""
from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from qa_workflow.database import Base
from qa_workflow.models.item import ItemMixin, QaTrackable
from qa_workflow.services.rules import TranslationAttribute


class TextBlock(QaTrackable, ItemMixin, Base):
    """A reusable heading + text block."""
    __tablename__ = "text_blocks"

    class_label = "Text block"

    heading = Column(String, nullable=True)
    text = Column(Text, nullable=True)

    flow_steps = {
        "text": ["heading", "text"],
    }
    status_requirements = {
        "draft": ["heading"],
        "reviewable": ["heading", "text"],
        "publishable": ["heading", "text"],
    }
    translatable_attributes = {
        "heading": TranslationAttribute(),
        "text": TranslationAttribute(),
    }


class Article(QaTrackable, ItemMixin, Base):
    """
    An article, written in two steps (info, then content).

    The lead block is translated through its own rules.
    """
    __tablename__ = "articles"

    class_label = "Article"

    title = Column(String, nullable=True)
    slug = Column(String, nullable=True)
    about = Column(Text, nullable=True)
    body = Column(Text, nullable=True)
    lead_block_id = Column(Integer, ForeignKey("text_blocks.id"), nullable=True)

    lead_block = relationship("TextBlock")

    flow_steps = {
        "info": ["title", "slug"],
        "content": ["about", "body", "lead_block"],
    }
    status_requirements = {
        "draft": ["title"],
        "reviewable": ["title", "slug", "about"],
        "publishable": ["title", "slug", "about", "body"],
    }
    translatable_attributes = {
        "title": TranslationAttribute(),
        "about": TranslationAttribute(),
        "body": TranslationAttribute(),
        "lead_block": TranslationAttribute(recursive=True),
    }
    attribute_hints = {
        "slug": "Lowercase words separated by dashes, used in the article URL.",
        "about": "One or two sentences shown in listings.",
    }


class Attachment(ItemMixin, Base):
    """A downloadable file. Not QA-tracked: saved without changesets."""
    __tablename__ = "attachments"

    class_label = "Attachment"
    first_flow_step_override = "file"

    title = Column(String, nullable=True)
    url = Column(String, nullable=True)

    flow_steps = {
        "file": ["title", "url"],
    }


# Route slug → item class
ITEM_TYPES = {
    "article": Article,
    "text-block": TextBlock,
    "attachment": Attachment,
}
