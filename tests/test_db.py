"""Document store tests: connection, schema, primitives and node accessors.

All tests use an in-memory SQLite database so they are:
- Fast (no disk I/O)
- Isolated (each fixture gets a fresh DB)
- Side-effect free (nothing written to ~/.inquiry_data)
"""

from __future__ import annotations

import sqlite3
from typing import Generator

import pytest

from inquiry.db.connection import get_connection, transaction
from inquiry.db.documents import (
    DELETE_FIELD,
    WriteOp,
    batch_write,
    get_document,
    list_collections,
    query_documents,
    set_document,
    update_fields,
)
from inquiry.db.migrations import MIGRATIONS, current_version, init_db
from inquiry.db.models import HumanRating, Node
from inquiry.db.nodes import (
    get_child_nodes,
    get_node,
    get_root_nodes,
    get_root_question,
    get_user_modified_nodes,
    insert_node,
    list_thesis_nodes,
    require_node,
    update_node_fields,
)
from inquiry.errors import NodeNotFoundError

C = "nodes"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestConnection:
    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA foreign_keys").fetchone()
        assert row[0] == 1

    def test_wal_mode(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA journal_mode").fetchone()
        # In-memory DBs always return 'memory', on-disk returns 'wal'
        assert row[0] in ("wal", "memory")

    def test_on_disk_database_created_in_workspace(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("inquiry.config.settings.workspace_dir", tmp_path / "ws")
        connection = get_connection()
        init_db(connection)
        connection.close()
        assert (tmp_path / "ws" / "documents.db").exists()


class TestInitDb:
    def test_documents_table_exists(self, conn: sqlite3.Connection) -> None:
        tables = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        assert "documents" in tables
        assert "schema_version" in tables

    def test_idempotent(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "kept"})
        init_db(conn)
        init_db(conn)
        assert get_document(conn, C, "n1")["summary"] == "kept"

    def test_migrations_applied(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == max(v for v, _ in MIGRATIONS)

    def test_rejects_invalid_json(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO documents (collection, id, data, seq, created_at, updated_at) "
                "VALUES ('x', 'y', 'not json', 1, 0, 0)"
            )


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class TestGetAndSet:
    def test_get_missing_returns_none(self, conn: sqlite3.Connection) -> None:
        assert get_document(conn, C, "nope") is None

    def test_set_returns_document_with_id(self, conn: sqlite3.Connection) -> None:
        doc = set_document(conn, C, "n1", {"summary": "S", "depth": 0})
        assert doc == {"id": "n1", "summary": "S", "depth": 0}

    def test_set_replaces_whole_document(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "S", "extra": 1})
        doc = set_document(conn, C, "n1", {"summary": "T"})
        assert doc == {"id": "n1", "summary": "T"}

    def test_id_field_in_data_is_ignored(self, conn: sqlite3.Connection) -> None:
        doc = set_document(conn, C, "n1", {"id": "other", "summary": "S"})
        assert doc["id"] == "n1"

    def test_collections_are_isolated(self, conn: sqlite3.Connection) -> None:
        set_document(conn, "a", "n1", {"summary": "in a"})
        set_document(conn, "b", "n1", {"summary": "in b"})
        assert get_document(conn, "a", "n1")["summary"] == "in a"
        assert get_document(conn, "b", "n1")["summary"] == "in b"
        assert list_collections(conn) == ["a", "b"]


class TestQueryDocuments:
    @pytest.fixture()
    def populated(self, conn: sqlite3.Connection) -> sqlite3.Connection:
        set_document(conn, C, "q", {"node_type": "question", "depth": 0, "parent_id": None})
        set_document(conn, C, "t1", {"node_type": "thesis", "depth": 1, "parent_id": "q", "score": 10})
        set_document(conn, C, "t2", {"node_type": "thesis", "depth": 1, "parent_id": "q", "score": 30})
        set_document(conn, C, "a1", {"node_type": "antithesis", "depth": 2, "parent_id": "t1"})
        return conn

    def test_equality(self, populated: sqlite3.Connection) -> None:
        docs = query_documents(populated, C, [("node_type", "==", "thesis")])
        assert [d["id"] for d in docs] == ["t1", "t2"]

    def test_conjunction(self, populated: sqlite3.Connection) -> None:
        docs = query_documents(
            populated, C, [("node_type", "==", "thesis"), ("score", ">", 20)]
        )
        assert [d["id"] for d in docs] == ["t2"]

    @pytest.mark.parametrize(
        "op, value, expected",
        [("<", 30, ["t1"]), ("<=", 30, ["t1", "t2"]), (">=", 10, ["t1", "t2"]), ("!=", 10, ["t2"])],
    )
    def test_comparisons(self, populated, op, value, expected) -> None:
        docs = query_documents(populated, C, [("score", op, value)])
        assert [d["id"] for d in docs] == expected

    def test_none_matches_null_and_absent(self, populated: sqlite3.Connection) -> None:
        set_document(populated, C, "orphan", {"node_type": "thesis"})
        docs = query_documents(populated, C, [("parent_id", "==", None)])
        assert [d["id"] for d in docs] == ["q", "orphan"]

    def test_not_none(self, populated: sqlite3.Connection) -> None:
        docs = query_documents(populated, C, [("score", "!=", None)])
        assert {d["id"] for d in docs} == {"t1", "t2"}

    def test_limit(self, populated: sqlite3.Connection) -> None:
        assert len(query_documents(populated, C, limit=2)) == 2

    def test_insertion_order_survives_replacement(self, populated: sqlite3.Connection) -> None:
        set_document(populated, C, "t1", {"node_type": "thesis", "depth": 1, "parent_id": "q"})
        docs = query_documents(populated, C, [("node_type", "==", "thesis")])
        assert [d["id"] for d in docs] == ["t1", "t2"]

    def test_bad_operator(self, populated: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            query_documents(populated, C, [("depth", "~", 1)])

    def test_bad_field_name(self, populated: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            query_documents(populated, C, [("depth') OR 1=1 --", "==", 1)])


class TestUpdateFields:
    def test_merges_fields(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "S", "depth": 1})
        doc = update_fields(conn, C, "n1", {"has_image": True})
        assert doc == {"id": "n1", "summary": "S", "depth": 1, "has_image": True}

    def test_delete_field(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "S", "ratings": []})
        doc = update_fields(conn, C, "n1", {"ratings": DELETE_FIELD})
        assert "ratings" not in doc
        assert "ratings" not in get_document(conn, C, "n1")

    def test_missing_document_raises(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NodeNotFoundError):
            update_fields(conn, C, "ghost", {"summary": "x"})

    def test_cannot_change_id(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {})
        with pytest.raises(ValueError):
            update_fields(conn, C, "n1", {"id": "n2"})


class TestBatchWrite:
    def test_applies_all(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "one"})
        count = batch_write(
            conn,
            C,
            [
                WriteOp(kind="update", doc_id="n1", data={"has_image": True}),
                WriteOp(kind="set", doc_id="n2", data={"summary": "two"}),
            ],
        )
        assert count == 2
        assert get_document(conn, C, "n1")["has_image"] is True
        assert get_document(conn, C, "n2")["summary"] == "two"

    def test_all_or_nothing(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NodeNotFoundError):
            batch_write(
                conn,
                C,
                [
                    WriteOp(kind="set", doc_id="n1", data={"summary": "one"}),
                    WriteOp(kind="update", doc_id="ghost", data={"x": 1}),
                ],
            )
        assert get_document(conn, C, "n1") is None

    def test_unknown_kind(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            batch_write(conn, C, [WriteOp(kind="delete", doc_id="n1")])


class TestTransaction:
    def test_commits_on_success(self, conn: sqlite3.Connection) -> None:
        with transaction(conn):
            set_document(conn, C, "n1", {"summary": "S"})
            update_fields(conn, C, "n1", {"depth": 3})
        assert not conn.in_transaction
        assert get_document(conn, C, "n1")["depth"] == 3

    def test_rolls_back_on_error(self, conn: sqlite3.Connection) -> None:
        set_document(conn, C, "n1", {"summary": "before"})
        with pytest.raises(RuntimeError):
            with transaction(conn):
                update_fields(conn, C, "n1", {"summary": "after"})
                raise RuntimeError("boom")
        assert get_document(conn, C, "n1")["summary"] == "before"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TestNodeModel:
    def test_from_document_defaults(self) -> None:
        node = Node.from_document({"id": "n1", "node_type": "thesis"})
        assert node.summary == ""
        assert node.human_ratings == {}
        assert node.ai_rating is None
        assert node.is_root

    def test_round_trip_preserves_unknown_fields(self) -> None:
        doc = {
            "id": "n1",
            "node_type": "thesis",
            "parent_id": "q",
            "depth": 1,
            "summary": "S",
            "content": "{C}",
            "humanRatings": {"u1": {"rating": 80, "timestamp": "t"}},
            "humanAverageRating": 80,
            "humanRatingCount": 1,
            "averageRating": 80,
            "totalRatingCount": 1,
            "createdAt": "2024-01-01T00:00:00+00:00",
            "source_page": 12,
        }
        node = Node.from_document(doc)
        assert node.human_ratings == {"u1": HumanRating(rating=80, timestamp="t")}
        assert node.extra == {"source_page": 12}
        out = node.to_document()
        assert out["source_page"] == 12
        assert out["humanRatings"] == {"u1": {"rating": 80, "timestamp": "t"}}
        assert out["createdAt"] == doc["createdAt"]
        assert "aiRating" not in out


# ---------------------------------------------------------------------------
# Node accessors
# ---------------------------------------------------------------------------

@pytest.fixture()
def graph(conn: sqlite3.Connection) -> sqlite3.Connection:
    """question -> 2 theses; thesis t1 -> direct children of mixed types."""
    insert_node(conn, {"node_type": "question", "depth": 0, "parent_id": None, "summary": "Q"}, C, "q")
    insert_node(conn, {"node_type": "thesis", "depth": 1, "parent_id": "q", "summary": "T1"}, C, "t1")
    insert_node(conn, {"node_type": "thesis", "depth": 1, "parent_id": "q", "summary": "T2"}, C, "t2")
    insert_node(conn, {"node_type": "antithesis", "depth": 2, "parent_id": "t1", "summary": "A1"}, C, "a1")
    insert_node(conn, {"node_type": "reason", "depth": 2, "parent_id": "t1", "summary": "R1"}, C, "r1")
    insert_node(conn, {"node_type": "antithesis", "depth": 2, "parent_id": "t1", "summary": "A2"}, C, "a2")
    return conn


class TestNodeAccessors:
    def test_get_node(self, graph: sqlite3.Connection) -> None:
        node = get_node(graph, "t1", C)
        assert node is not None
        assert node.summary == "T1"
        assert get_node(graph, "ghost", C) is None

    def test_require_node_raises(self, graph: sqlite3.Connection) -> None:
        with pytest.raises(NodeNotFoundError) as info:
            require_node(graph, "ghost", C)
        assert info.value.node_id == "ghost"
        assert info.value.collection == C

    def test_children_in_canonical_order(self, graph: sqlite3.Connection) -> None:
        children = get_child_nodes(graph, "t1", C)
        assert [c.id for c in children] == ["r1", "a1", "a2"]

    def test_no_children(self, graph: sqlite3.Connection) -> None:
        assert get_child_nodes(graph, "r1", C) == []

    def test_root_nodes_and_question(self, graph: sqlite3.Connection) -> None:
        assert [n.id for n in get_root_nodes(graph, C)] == ["q"]
        assert get_root_question(graph, C).id == "q"
        assert get_root_question(graph, "empty") is None

    def test_list_theses(self, graph: sqlite3.Connection) -> None:
        assert [n.id for n in list_thesis_nodes(graph, C)] == ["t1", "t2"]

    def test_insert_generates_uuid(self, graph: sqlite3.Connection) -> None:
        node = insert_node(graph, {"node_type": "reason", "parent_id": "t2", "depth": 2}, C)
        assert len(node.id) == 36
        assert get_node(graph, node.id, C) is not None

    def test_update_node_fields(self, graph: sqlite3.Connection) -> None:
        node = update_node_fields(graph, "t2", {"has_image": True}, C)
        assert node.has_image

    def test_user_modified_nodes_deduplicated(self, graph: sqlite3.Connection) -> None:
        update_node_fields(graph, "t1", {"humanRatingCount": 2, "has_image": True}, C)
        update_node_fields(graph, "a2", {"user_generated": True}, C)
        update_node_fields(graph, "r1", {"has_image": True}, C)
        modified = get_user_modified_nodes(graph, C)
        assert [n.id for n in modified] == ["t1", "r1", "a2"]
