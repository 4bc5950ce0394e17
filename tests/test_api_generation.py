"""Tests for the generation, explanation and "believes" API endpoints.

The gateway is patched in every test; no model is called.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from inquiry.api.app import create_app
from inquiry.db.connection import get_connection
from inquiry.db.documents import get_document
from inquiry.db.migrations import init_db
from inquiry.db.nodes import get_child_nodes, insert_node
from inquiry.errors import GatewayError
from inquiry.storage.blobs import BlobStore

C = "nodes"
BASE = f"/graphs/{C}/nodes"
REPLY = "[START]Knowledge needs no luck[BREAK]{Luck undermines knowledge}[END]"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn():
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    insert_node(
        connection,
        {"node_type": "question", "depth": 0, "summary": "What is Knowledge?", "content": "?"},
        C,
        node_id="q",
    )
    insert_node(
        connection,
        {"node_type": "thesis", "depth": 1, "parent_id": "q", "summary": "Justified true belief",
         "content": "{True},{Believed},{Justified}", "humanAverageRating": 60, "humanRatingCount": 1},
        C,
        node_id="t1",
    )
    insert_node(
        connection,
        {"node_type": "reason", "depth": 2, "parent_id": "t1", "terminal": True,
         "summary": "Plato", "content": "{Theaetetus}"},
        C,
        node_id="r1",
    )
    yield connection
    connection.close()


@pytest.fixture()
def client(conn, tmp_path, monkeypatch):
    monkeypatch.setattr("inquiry.config.settings.workspace_dir", tmp_path / "ws")
    app = create_app()
    with TestClient(app, raise_server_exceptions=True) as c:
        c.app.state.db = conn
        c.app.state.blobs = BlobStore(root=tmp_path / "blobs", base_url="http://testserver")
        yield c


def _events(body: str) -> list[dict]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


def _preview(client, node_id: str = "t1", child_type: str = "antithesis") -> dict:
    with patch("inquiry.services.generation.gateway.chat_complete", AsyncMock(return_value=REPLY)):
        resp = client.post(
            f"{BASE}/{node_id}/generate/preview",
            json={"child_type": child_type, "user_input": "Gettier"},
        )
    assert resp.status_code == 200
    return resp.json()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class TestPreview:
    def test_returns_candidate_without_storing(self, client, conn):
        candidate = _preview(client)
        assert candidate["summary"] == "Knowledge needs no luck"
        assert candidate["content"] == "{Luck undermines knowledge}"
        assert candidate["node_type"] == "antithesis"
        assert candidate["parent_id"] == "t1"
        assert candidate["depth"] == 2
        assert candidate["terminal"] is False
        assert candidate["user_generated"] is True
        assert len(get_child_nodes(conn, "t1", C)) == 1

    def test_invalid_child_type(self, client):
        mock = AsyncMock(return_value=REPLY)
        with patch("inquiry.services.generation.gateway.chat_complete", mock):
            resp = client.post(
                f"{BASE}/t1/generate/preview",
                json={"child_type": "synthesis", "user_input": "x"},
            )
        assert resp.status_code == 422
        mock.assert_not_called()

    def test_terminal_parent(self, client):
        resp = client.post(
            f"{BASE}/r1/generate/preview",
            json={"child_type": "antithesis", "user_input": "x"},
        )
        assert resp.status_code == 422

    def test_unparsable_reply(self, client):
        with patch(
            "inquiry.services.generation.gateway.chat_complete",
            AsyncMock(return_value="no block here"),
        ):
            resp = client.post(
                f"{BASE}/t1/generate/preview",
                json={"child_type": "antithesis", "user_input": "x"},
            )
        assert resp.status_code == 502
        assert "format" in resp.json()["detail"]

    def test_missing_parent(self, client):
        resp = client.post(
            f"{BASE}/ghost/generate/preview",
            json={"child_type": "antithesis", "user_input": "x"},
        )
        assert resp.status_code == 404


class TestCommitAndReject:
    def test_commit(self, client, conn):
        candidate = _preview(client)
        resp = client.post(f"{BASE}/t1/generate/commit", json=candidate)
        assert resp.status_code == 201
        node = resp.json()
        assert node["parent_id"] == "t1"
        assert node["user_generated"] is True
        assert get_document(conn, C, node["id"])["summary"] == "Knowledge needs no luck"

    def test_commit_uses_path_parent(self, client):
        candidate = _preview(client)
        candidate["parent_id"] = "elsewhere"
        node = client.post(f"{BASE}/t1/generate/commit", json=candidate).json()
        assert node["parent_id"] == "t1"

    def test_commit_rejects_wrong_depth(self, client):
        candidate = _preview(client)
        candidate["depth"] = 5
        assert client.post(f"{BASE}/t1/generate/commit", json=candidate).status_code == 422

    def test_commit_rejects_wrong_type(self, client):
        candidate = _preview(client)
        candidate["node_type"] = "thesis"
        assert client.post(f"{BASE}/t1/generate/commit", json=candidate).status_code == 422

    def test_reject_stores_nothing(self, client, conn):
        candidate = _preview(client)
        resp = client.post(f"{BASE}/t1/generate/reject", json=candidate)
        assert resp.status_code == 204
        assert len(get_child_nodes(conn, "t1", C)) == 1


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------

class TestExplanation:
    def test_full_explanation(self, client):
        with patch(
            "inquiry.services.explanation.gateway.chat_complete",
            AsyncMock(return_value="# Overview\nIt is **classic**."),
        ):
            resp = client.get(f"{BASE}/t1/explanation")
        assert resp.status_code == 200
        data = resp.json()
        assert data["explanation"] == "# Overview\nIt is **classic**."
        assert data["formatted"] == "<h3>Overview</h3>\nIt is <strong>classic</strong>."

    def test_missing_node(self, client):
        assert client.get(f"{BASE}/ghost/explanation").status_code == 404

    def test_stream(self, client):
        async def fake_stream(prompt, **kwargs):
            for delta in ["It is ", "**classic**"]:
                yield delta

        with patch("inquiry.services.explanation.gateway.stream_chat", fake_stream):
            resp = client.get(f"{BASE}/t1/explanation/stream")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = _events(resp.text)
        assert [e["event"] for e in events] == ["token", "token", "done"]
        assert events[1]["text"] == "It is **classic**"
        assert events[-1]["formatted"] == "It is <strong>classic</strong>"

    def test_stream_error_event(self, client):
        async def broken(prompt, **kwargs):
            yield "Partial"
            raise GatewayError("connection reset")

        with patch("inquiry.services.explanation.gateway.stream_chat", broken):
            resp = client.get(f"{BASE}/t1/explanation/stream")

        events = _events(resp.text)
        assert events[0]["delta"] == "Partial"
        assert events[-1] == {"event": "error", "detail": "connection reset"}

    def test_stream_missing_node(self, client):
        assert client.get(f"{BASE}/ghost/explanation/stream").status_code == 404


# ---------------------------------------------------------------------------
# This House Believes
# ---------------------------------------------------------------------------

class TestBelieves:
    def test_believes(self, client):
        with patch(
            "inquiry.services.debate.gateway.chat_complete",
            AsyncMock(return_value="Title: Justified true belief"),
        ):
            resp = client.post("/graphs/nodes/believes")
        assert resp.status_code == 200
        beliefs = resp.json()
        assert beliefs == [
            {
                "title": "Justified true belief",
                "description": "{True},{Believed},{Justified}",
                "confidence": 70,
                "supporting_nodes": 5,
                "node_id": "t1",
            }
        ]

    def test_no_root_question(self, client):
        assert client.post("/graphs/freedom/believes").status_code == 404

    def test_no_theses(self, client, conn):
        insert_node(conn, {"node_type": "question", "depth": 0, "summary": "Q"}, "empty", node_id="q")
        resp = client.post("/graphs/empty/believes")
        assert resp.status_code == 422

    def test_gateway_failure(self, client):
        with patch(
            "inquiry.services.debate.gateway.chat_complete",
            AsyncMock(side_effect=GatewayError("quota")),
        ):
            resp = client.post("/graphs/nodes/believes")
        assert resp.status_code == 502
