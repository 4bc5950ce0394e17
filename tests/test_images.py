"""Blob store and node image tests.  Blobs live under ``tmp_path``."""

from __future__ import annotations

import re
import sqlite3
from typing import Generator
from unittest.mock import AsyncMock, patch

import pytest

from inquiry.db.connection import get_connection
from inquiry.db.documents import get_document
from inquiry.db.migrations import init_db
from inquiry.db.nodes import get_node, insert_node
from inquiry.errors import GatewayError, NodeNotFoundError
from inquiry.services.images import (
    backfill_has_image,
    build_image_prompt,
    generate_node_image,
    list_node_images,
    upload_node_image,
)
from inquiry.storage.blobs import BlobRef, BlobStore, image_prefix

C = "nodes"


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    insert_node(
        connection,
        {"node_type": "thesis", "depth": 1, "summary": "Minds are brains",
         "content": "{Mental states are brain states},\n{Nothing is left over}"},
        C,
        node_id="t",
    )
    yield connection
    connection.close()


@pytest.fixture()
def store(tmp_path) -> BlobStore:
    return BlobStore(root=tmp_path / "blobs", base_url="http://files.test/")


class TestBlobStore:
    def test_upload_read_list(self, store) -> None:
        ref = store.upload("c/n/images/1-a.png", b"abc")
        assert ref.name == "1-a.png"
        assert store.read("c/n/images/1-a.png") == b"abc"
        assert [r.key for r in store.list("c/n/images")] == ["c/n/images/1-a.png"]

    def test_list_missing_prefix(self, store) -> None:
        assert store.list("nothing/here") == []
        assert store.list_prefixes() == []

    def test_list_prefixes(self, store) -> None:
        store.upload("c1/n1/images/x.png", b"1")
        store.upload("c1/n2/images/x.png", b"2")
        store.upload("c2/n3/images/x.png", b"3")
        assert store.list_prefixes() == ["c1", "c2"]
        assert store.list_prefixes("c1") == ["n1", "n2"]

    @pytest.mark.parametrize("key", ["../escape.png", "/abs.png", "a/../b", ""])
    def test_rejects_unsafe_keys(self, store, key) -> None:
        with pytest.raises(ValueError):
            store.upload(key, b"x")

    def test_read_missing(self, store) -> None:
        with pytest.raises(FileNotFoundError):
            store.read("c/n/images/none.png")

    def test_download_url(self, store) -> None:
        url = store.download_url(BlobRef(key="c/n/images/1-my pic.png"))
        assert url == "http://files.test/blobs/c/n/images/1-my%20pic.png"

    def test_image_prefix_rejects_slashes(self) -> None:
        with pytest.raises(ValueError):
            image_prefix("c", "a/b")


class TestUpload:
    def test_upload_sets_has_image(self, conn, store) -> None:
        asset = upload_node_image(conn, store, "t", "photo.png", b"\x89PNG", C)

        assert asset.name == "photo.png"
        assert asset.path.startswith("nodes/t/images/")
        assert asset.path.endswith("-photo.png")
        assert asset.url.startswith("http://files.test/blobs/nodes/t/images/")
        assert get_node(conn, "t", C).has_image is True
        assert store.read(asset.path) == b"\x89PNG"

    def test_filename_directories_stripped(self, conn, store) -> None:
        asset = upload_node_image(conn, store, "t", "../../etc/photo.png", b"x", C)
        assert asset.name == "photo.png"

    def test_missing_node(self, conn, store) -> None:
        with pytest.raises(NodeNotFoundError):
            upload_node_image(conn, store, "ghost", "a.png", b"x", C)
        assert store.list_prefixes() == []


class TestList:
    def test_lists_uploaded(self, conn, store) -> None:
        upload_node_image(conn, store, "t", "a.png", b"1", C)
        images = list_node_images(store, "t", C)
        assert len(images) == 1
        assert images[0].name.endswith("-a.png")

    def test_no_images(self, store) -> None:
        assert list_node_images(store, "t", C) == []

    def test_listing_failure_degrades(self, store) -> None:
        with patch.object(store, "list", side_effect=OSError("disk gone")):
            assert list_node_images(store, "t", C) == []


class TestGenerate:
    def test_prompt_uses_flattened_content(self, conn) -> None:
        prompt = build_image_prompt(get_node(conn, "t", C))
        assert "Idea: Minds are brains" in prompt
        assert "Mental states are brain states, Nothing is left over" in prompt
        assert "{" not in prompt

    async def test_generate_stores_image(self, conn, store) -> None:
        mock = AsyncMock(return_value=b"\x89PNG generated")
        with patch("inquiry.services.images.gateway.generate_image", mock):
            asset = await generate_node_image(conn, store, "t", C)

        assert asset.name.startswith("ai-generated-")
        assert re.fullmatch(rf"{C}/t/images/ai-generated-\d+\.png", asset.path)
        assert store.read(asset.path) == b"\x89PNG generated"
        assert get_node(conn, "t", C).has_image is True
        assert "Minds are brains" in mock.call_args.args[0]

    async def test_custom_prompt(self, conn, store) -> None:
        mock = AsyncMock(return_value=b"png")
        with patch("inquiry.services.images.gateway.generate_image", mock):
            await generate_node_image(conn, store, "t", C, prompt="A brain in a jar")
        assert mock.call_args.args[0] == "A brain in a jar"

    async def test_gateway_failure_stores_nothing(self, conn, store) -> None:
        with patch(
            "inquiry.services.images.gateway.generate_image",
            AsyncMock(side_effect=GatewayError("down")),
        ):
            with pytest.raises(GatewayError):
                await generate_node_image(conn, store, "t", C)
        assert list_node_images(store, "t", C) == []
        assert get_node(conn, "t", C).has_image is False


class TestBackfill:
    def test_flags_nodes_with_directories(self, conn, store) -> None:
        insert_node(conn, {"node_type": "thesis", "summary": "Other"}, C, node_id="u")
        store.upload("nodes/t/images/1-a.png", b"1")
        store.upload("nodes/orphan/images/1-a.png", b"1")

        assert backfill_has_image(conn, store) == {"nodes": 1}
        assert get_document(conn, C, "t")["has_image"] is True
        assert not get_document(conn, C, "u").get("has_image")
        assert get_document(conn, C, "orphan") is None

    def test_already_flagged_not_rewritten(self, conn, store) -> None:
        store.upload("nodes/t/images/1-a.png", b"1")
        backfill_has_image(conn, store)
        assert backfill_has_image(conn, store) == {"nodes": 0}

    def test_empty_store(self, conn, store) -> None:
        assert backfill_has_image(conn, store) == {}
