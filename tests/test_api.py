"""
API tests for the QA workflow routes.

Each test runs against a fresh in-memory database shared by the app and the test.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from qa_workflow.api.routes import router
from qa_workflow.database import Base, get_db
from qa_workflow.models.content import Article
from qa_workflow.models.domain import Group, NodeHasGroup


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def client(session_factory):
    app = FastAPI()
    app.include_router(router, prefix="/api")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def create_article(client, **values):
    values = values or {"title": "Wolves", "slug": "wolves"}
    response = client.post("/api/items/article", json={"user_id": "user_123", "values": values})
    assert response.status_code == 201, response.text
    return response.json()


def add_to_group(session_factory, node_id, name="sweden"):
    db = session_factory()
    group = Group(name=name)
    db.add(group)
    db.flush()
    db.add(NodeHasGroup(node_id=node_id, group_id=group.id))
    db.commit()
    db.close()


class TestItems:
    def test_create_article_starts_as_draft(self, client):
        body = create_article(client)

        assert body["item_type"] == "article"
        assert body["label"] == f"Article #{body['id']}"
        assert body["qa_state"]["status"] == "draft"
        assert body["qa_state"]["allow_review"] is False
        assert body["qa_state"]["draft_validation_progress"] == 100
        assert body["qa_state"]["publishable_validation_progress"] == 50
        assert body["first_flow_step"] == "info"
        assert body["is_publishable"] is False

    def test_create_attachment_has_no_qa_state(self, client):
        response = client.post("/api/items/attachment", json={
            "user_id": "user_123",
            "values": {"title": "Manual", "url": "https://example.com/manual.pdf"},
        })

        assert response.status_code == 201
        body = response.json()
        assert body["qa_state"] is None
        assert body["first_flow_step"] == "file"

        changesets = client.get(f"/api/items/attachment/{body['id']}/changesets")
        assert changesets.json() == []

    def test_unknown_item_type(self, client):
        response = client.post("/api/items/video", json={"user_id": "user_123"})

        assert response.status_code == 404

    def test_missing_item(self, client):
        assert client.get("/api/items/article/999").status_code == 404

    @pytest.mark.parametrize("values", [{"id": 5}, {"colour": "red"}, {"lead_block": None}])
    def test_unwritable_fields_are_rejected(self, client, values):
        response = client.post("/api/items/article", json={"user_id": "user_123", "values": values})

        assert response.status_code == 400

    def test_user_id_is_required(self, client):
        response = client.post("/api/items/article", json={"values": {"title": "Wolves"}})

        assert response.status_code == 422

    def test_failed_validation_rolls_back(self, client):
        response = client.post("/api/items/article", json={
            "user_id": "user_123",
            "values": {"slug": "no-title"},
            "scenario": {"kind": "status", "tier": "draft"},
        })

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["errors"]["title"] == ["title cannot be blank."]
        assert "Failed to save" in detail["message"]

    def test_incomplete_scenario_is_rejected(self, client):
        response = client.post("/api/items/article", json={
            "user_id": "user_123",
            "values": {"title": "Wolves"},
            "scenario": {"kind": "step"},
        })

        assert response.status_code == 400
        assert "step" in response.json()["detail"]

    def test_update_records_changeset(self, client):
        article = create_article(client)

        response = client.put(f"/api/items/article/{article['id']}", json={
            "user_id": "user_456",
            "values": {"about": "Where wolves live"},
            "scenario": {"kind": "step", "step": "content", "tier": "draft"},
        })

        assert response.status_code == 200
        assert response.json()["qa_state"]["reviewable_validation_progress"] == 100

        changesets = client.get(f"/api/items/article/{article['id']}/changesets").json()
        assert len(changesets) == 2
        assert changesets[0]["user_id"] == "user_456"
        assert changesets[0]["contents"]["diff"] == {
            "reviewable_validation_progress": 66,
            "publishable_validation_progress": 50,
        }

    def test_translations_update_progress(self, client):
        article = create_article(client)

        response = client.put(f"/api/items/article/{article['id']}", json={
            "user_id": "user_123",
            "translations": {"es": {"title": "Lobos"}},
        })

        progress = response.json()["qa_state"]["translations_progress"]
        assert progress["es"] == 100
        assert progress["sv"] == 0


class TestRulesAndProgress:
    def test_rules_are_listed(self, client):
        article = create_article(client)

        rules = client.get(f"/api/items/article/{article['id']}/rules").json()

        flags = {rule["params"].get("flag") for rule in rules if rule["kind"] == "status_allowed"}
        assert flags == {"allow_review", "allow_publish"}
        assert any(
            rule["attributes"] == ["title_es"] and "into_es" in rule["scenarios"]
            for rule in rules
        )

    def test_progress_for_scenario(self, client):
        article = create_article(client)

        response = client.get(
            f"/api/items/article/{article['id']}/progress",
            params={"kind": "status", "tier": "publishable"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "scenario": "publishable",
            "progress": 50,
            "invalid_fields": ["about", "body"],
        }

    def test_progress_needs_complete_scenario(self, client):
        article = create_article(client)

        response = client.get(f"/api/items/article/{article['id']}/progress", params={"kind": "translation"})

        assert response.status_code == 400


class TestStatusAndPublishing:
    def test_status_change_refused_then_allowed(self, client):
        article = create_article(client)
        url = f"/api/items/article/{article['id']}"

        refused = client.post(f"{url}/status", json={"status": "reviewable"})
        assert refused.status_code == 403
        assert refused.json()["detail"]["flag"] == "allow_review"

        permissions = client.put(f"{url}/permissions", json={"allow_review": True})
        assert permissions.json()["allow_review"] is True

        allowed = client.post(f"{url}/status", json={"status": "reviewable"})
        assert allowed.status_code == 200
        assert allowed.json()["status"] == "reviewable"

    def test_attachment_status_is_a_bad_request(self, client):
        attachment = client.post("/api/items/attachment", json={
            "user_id": "user_123", "values": {"title": "Manual"},
        }).json()

        response = client.post(f"/api/items/attachment/{attachment['id']}/status", json={"status": "draft"})

        assert response.status_code == 400

    def test_publish_requires_group(self, client, session_factory):
        article = create_article(client, title="Wolves", slug="wolves", about="Packs", body="Wolves live in packs.")
        url = f"/api/items/article/{article['id']}"

        assert client.post(f"{url}/publish").status_code == 403

        add_to_group(session_factory, article["node_id"])
        assert client.get(url).json()["is_publishable"] is True

        published = client.post(f"{url}/publish")
        assert published.status_code == 200
        assert published.json()["is_published"] is True
        assert published.json()["qa_state"]["status"] == "published"

        unpublished = client.post(f"{url}/unpublish")
        assert unpublished.status_code == 200
        assert unpublished.json()["is_published"] is False
        assert unpublished.json()["qa_state"]["status"] == "publishable"

    def test_unpublish_refused_when_hidden(self, client):
        article = create_article(client)

        response = client.post(f"/api/items/article/{article['id']}/unpublish")

        assert response.status_code == 403

    def test_created_item_is_attached_to_a_node(self, client, session_factory):
        article = create_article(client)

        db = session_factory()
        stored = db.query(Article).filter(Article.id == article["id"]).one()
        assert stored.node_id == article["node_id"]
        db.close()
