"""Document-store primitives over the ``documents`` table.

A document is a JSON object addressed by ``(collection, id)``.  The node
accessors and services only ever use the shapes exposed here:

* get-by-id                      — :func:`get_document`
* query by field filters         — :func:`query_documents`
* field-level update             — :func:`update_fields`
* batched multi-document writes  — :func:`batch_write`

Returned documents are plain dicts that always include their ``id``.
"""

from __future__ import annotations

import json
import re
import sqlite3
from dataclasses import dataclass, field
from time import time
from typing import Any, Iterable, Optional

from inquiry.db.connection import write_scope
from inquiry.errors import NodeNotFoundError


class _DeleteField:
    """Sentinel: passing it as a value to :func:`update_fields` removes the field."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_OPERATORS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

Filter = tuple[str, str, Any]


@dataclass
class WriteOp:
    """One entry of a :func:`batch_write` call.

    ``kind`` is ``"set"`` (create or replace the whole document) or
    ``"update"`` (merge top-level fields into an existing document).
    """

    kind: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_document(row: sqlite3.Row) -> dict[str, Any]:
    doc = json.loads(row["data"] or "{}")
    doc["id"] = row["id"]
    return doc


def _encode(data: dict[str, Any]) -> str:
    body = {k: v for k, v in data.items() if k != "id" and v is not DELETE_FIELD}
    return json.dumps(body, default=str)


def _json_path(field_name: str) -> str:
    if not _FIELD_NAME.match(field_name):
        raise ValueError(f"Invalid field name {field_name!r}")
    return "$." + field_name


def _set(conn: sqlite3.Connection, collection: str, doc_id: str, data: dict[str, Any]) -> None:
    now = int(time())
    conn.execute(
        """
        INSERT INTO documents (collection, id, data, seq, created_at, updated_at)
        VALUES (
            ?, ?, ?,
            (SELECT COALESCE(MAX(seq), 0) + 1 FROM documents WHERE collection = ?),
            ?, ?
        )
        ON CONFLICT (collection, id) DO UPDATE
            SET data = excluded.data, updated_at = excluded.updated_at
        """,
        (collection, doc_id, _encode(data), collection, now, now),
    )


def _update(
    conn: sqlite3.Connection, collection: str, doc_id: str, fields: dict[str, Any]
) -> dict[str, Any]:
    row = conn.execute(
        "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
        (collection, doc_id),
    ).fetchone()
    if row is None:
        raise NodeNotFoundError(doc_id, collection)

    doc = _row_to_document(row)
    for key, value in fields.items():
        if key == "id":
            raise ValueError("Cannot update field 'id'")
        if value is DELETE_FIELD:
            doc.pop(key, None)
        else:
            doc[key] = value

    conn.execute(
        "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND id = ?",
        (_encode(doc), int(time()), collection, doc_id),
    )
    return doc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_document(
    conn: sqlite3.Connection, collection: str, doc_id: str
) -> Optional[dict[str, Any]]:
    """Fetch a single document.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
        (collection, doc_id),
    ).fetchone()
    return _row_to_document(row) if row else None


def query_documents(
    conn: sqlite3.Connection,
    collection: str,
    filters: Iterable[Filter] = (),
    limit: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Return documents matching every ``(field, op, value)`` filter.

    ``op`` is one of ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``.  Comparing
    with ``None`` via ``==`` matches documents where the field is null *or*
    absent; ``!=`` with ``None`` matches documents where it is present.

    Results come back in insertion order.
    """
    clauses = ["collection = ?"]
    params: list[Any] = [collection]

    for field_name, op, value in filters:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator {op!r}")
        path = _json_path(field_name)
        if value is None:
            if op == "==":
                clauses.append("json_extract(data, ?) IS NULL")
            elif op == "!=":
                clauses.append("json_extract(data, ?) IS NOT NULL")
            else:
                raise ValueError(f"Operator {op!r} cannot compare with None")
            params.append(path)
            continue
        clauses.append(f"json_extract(data, ?) {_OPERATORS[op]} ?")
        params.extend([path, value])

    sql = f"SELECT id, data FROM documents WHERE {' AND '.join(clauses)} ORDER BY seq"  # noqa: S608
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))

    return [_row_to_document(r) for r in conn.execute(sql, params).fetchall()]


def set_document(
    conn: sqlite3.Connection, collection: str, doc_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Create or fully replace a document and return it."""
    with write_scope(conn):
        _set(conn, collection, doc_id, data)
    return get_document(conn, collection, doc_id)  # type: ignore[return-value]


def update_fields(
    conn: sqlite3.Connection, collection: str, doc_id: str, fields: dict[str, Any]
) -> dict[str, Any]:
    """Merge top-level *fields* into an existing document and return it.

    A value of :data:`DELETE_FIELD` removes that field.

    Raises:
        NodeNotFoundError: If the document does not exist.
    """
    with write_scope(conn):
        return _update(conn, collection, doc_id, fields)


def batch_write(conn: sqlite3.Connection, collection: str, writes: Iterable[WriteOp]) -> int:
    """Apply many writes atomically.  Returns the number of writes applied.

    Any failure (e.g. an ``update`` on a missing document) rolls back the
    whole batch.
    """
    count = 0
    with write_scope(conn):
        for op in writes:
            if op.kind == "set":
                _set(conn, collection, op.doc_id, op.data)
            elif op.kind == "update":
                _update(conn, collection, op.doc_id, op.data)
            else:
                raise ValueError(f"Unknown write kind {op.kind!r}")
            count += 1
    return count


def list_collections(conn: sqlite3.Connection) -> list[str]:
    """Return every collection name that holds at least one document."""
    rows = conn.execute(
        "SELECT DISTINCT collection FROM documents ORDER BY collection"
    ).fetchall()
    return [r["collection"] for r in rows]
