"""Pytest configuration and shared fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from qa_workflow.database import Base
from qa_workflow.models.content import Article
from qa_workflow.models.domain import Group, NodeHasGroup
from qa_workflow.services.qa_state import QaStateController

LANGUAGES = ["es", "sv"]


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # In-memory SQLite for fast tests
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def qa(db_session):
    """Controller translating into Spanish and Swedish, English messages."""
    return QaStateController(db_session, languages=LANGUAGES, locale="en")


@pytest.fixture
def sample_article(db_session, qa):
    """An article saved once through the tracked save path (title and slug only)."""
    article = Article(title="Wolves", slug="wolves")
    assert qa.save_with_changeset(article, "user_123")
    return article


@pytest.fixture
def complete_article(db_session, qa):
    """An article meeting every publishable requirement."""
    article = Article(
        title="Wolves",
        slug="wolves",
        about="Where wolves live",
        body="Wolves live in packs.",
    )
    assert qa.save_with_changeset(article, "user_123")
    return article


@pytest.fixture
def sample_group(db_session):
    group = Group(name="sweden")
    db_session.add(group)
    db_session.commit()
    return group


@pytest.fixture
def join_group(db_session):
    """Attach an item's node to a group (hidden)."""
    def _join(item, group):
        join = NodeHasGroup(node_id=item.node_id, group_id=group.id)
        db_session.add(join)
        db_session.commit()
        return join
    return _join
