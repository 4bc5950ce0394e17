"""AI rating tests: prompt, reply parsing and the one-rating-per-node rule."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from typing import Generator
from unittest.mock import AsyncMock, patch

import pytest

from inquiry.db.connection import get_connection
from inquiry.db.migrations import init_db
from inquiry.db.nodes import get_node, insert_node
from inquiry.errors import GatewayError, NodeNotFoundError
from inquiry.services.ai_rating import (
    DEFAULT_RATING,
    extract_rating,
    get_rating_template,
    trigger_ai_rating,
)
from inquiry.services.ratings import submit_ai_rating, submit_human_rating

C = "nodes"


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    insert_node(
        connection,
        {"node_type": "question", "depth": 0, "summary": "Q?", "content": "Question body"},
        C,
        node_id="q",
    )
    insert_node(
        connection,
        {"node_type": "thesis", "depth": 1, "parent_id": "q", "summary": "T", "content": "{x}"},
        C,
        node_id="t",
    )
    yield connection
    connection.close()


class TestExtractRating:
    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("85", 85),
            ("Rating: 72/100", 72),
            ("100", 100),
            ("0", 0),
            ("I would give it 7.", 7),
        ],
    )
    def test_first_number(self, reply, expected) -> None:
        assert extract_rating(reply) == expected

    @pytest.mark.parametrize("reply", ["", "no idea", "about 250"])
    def test_default(self, reply) -> None:
        assert extract_rating(reply) == DEFAULT_RATING


class TestTemplate:
    def test_type_template(self) -> None:
        assert "Thesis title: {{summary}}" in get_rating_template("thesis")

    def test_fallback(self) -> None:
        assert 'type "mystery"' in get_rating_template("mystery")


class TestTriggerAIRating:
    async def test_first_rating_is_stored(self, conn) -> None:
        submit_human_rating(conn, "t", "u1", 70, C)
        mock = AsyncMock(return_value="80")
        with patch("inquiry.services.ai_rating.gateway.chat_complete", mock):
            result = await trigger_ai_rating(conn, "t", C)

        assert result.ai_rating == 80
        assert result.already_exists is False
        assert result.average_rating == 75
        assert result.total_rating_count == 2
        assert get_node(conn, "t", C).ai_rating == 80

        prompt = mock.call_args.args[0]
        assert "Q?" in prompt
        assert "Question body" in prompt

    async def test_existing_rating_not_regenerated(self, conn) -> None:
        with patch("inquiry.services.ai_rating.gateway.chat_complete", AsyncMock(return_value="60")):
            await trigger_ai_rating(conn, "t", C)

        mock = AsyncMock(return_value="99")
        with patch("inquiry.services.ai_rating.gateway.chat_complete", mock):
            result = await trigger_ai_rating(conn, "t", C)

        mock.assert_not_called()
        assert result.already_exists is True
        assert result.ai_rating == 60

    async def test_concurrent_triggers_store_one_rating(self, conn) -> None:
        async def slow_reply(*args, **kwargs) -> str:
            await asyncio.sleep(0.05)
            return "80"

        with patch("inquiry.services.ai_rating.gateway.chat_complete", AsyncMock(side_effect=slow_reply)):
            first, second = await asyncio.gather(
                trigger_ai_rating(conn, "t", C),
                trigger_ai_rating(conn, "t", C),
            )

        assert sorted([first.already_exists, second.already_exists]) == [False, True]
        assert first.ai_rating == second.ai_rating == 80
        assert get_node(conn, "t", C).ai_rating == 80

    async def test_rating_is_written_off_the_event_loop(self, conn) -> None:
        threads: list[int] = []

        def recording_submit(*args, **kwargs):
            threads.append(threading.get_ident())
            return submit_ai_rating(*args, **kwargs)

        with patch("inquiry.services.ai_rating.submit_ai_rating", recording_submit), patch(
            "inquiry.services.ai_rating.gateway.chat_complete", AsyncMock(return_value="80")
        ):
            await trigger_ai_rating(conn, "t", C)

        assert threads and threads[0] != threading.get_ident()

    async def test_question_is_skipped(self, conn) -> None:
        mock = AsyncMock(return_value="90")
        with patch("inquiry.services.ai_rating.gateway.chat_complete", mock):
            assert await trigger_ai_rating(conn, "q", C) is None
        mock.assert_not_called()
        assert get_node(conn, "q", C).ai_rating is None

    async def test_unparsable_reply_uses_default(self, conn) -> None:
        with patch(
            "inquiry.services.ai_rating.gateway.chat_complete",
            AsyncMock(return_value="Hard to say."),
        ):
            result = await trigger_ai_rating(conn, "t", C)
        assert result.ai_rating == DEFAULT_RATING

    async def test_gateway_failure_stores_nothing(self, conn) -> None:
        with patch(
            "inquiry.services.ai_rating.gateway.chat_complete",
            AsyncMock(side_effect=GatewayError("down")),
        ):
            with pytest.raises(GatewayError):
                await trigger_ai_rating(conn, "t", C)
        assert get_node(conn, "t", C).ai_rating is None

    async def test_missing_node(self, conn) -> None:
        with pytest.raises(NodeNotFoundError):
            await trigger_ai_rating(conn, "ghost", C)
