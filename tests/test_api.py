from __future__ import annotations

import asyncio

import pytest

from semanami_client.api import SemanamiApi
from semanami_client.errors import ServerError
from semanami_client.offline.queue import QUEUED
from tests._helpers.fake_api import FakeApi, make_service


def test_chat_calls() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            client = SemanamiApi(svc)
            chats = await client.fetch_chats()
            created = await client.create_chat(scenario_key="cafe", title="Ordering")
            msg = await client.add_message("c2", role="user", text="hello")
            renamed = await client.rename_chat("c2", "Cafe practice")
            chat = await client.fetch_chat("c2")
            return chats, created, msg, renamed, chat

    chats, created, msg, renamed, chat = asyncio.run(main())
    assert chats[0]["id"] == "c1"
    assert created["feature"] == "chat"
    assert created["scenarioKey"] == "cafe"
    assert msg["text"] == "hello"
    assert renamed["metadata"] == {"type": "rename"}
    assert renamed["role"] == "system"
    assert chat["id"] == "c2"


def test_speech_message_and_session_dispatch() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            client = SemanamiApi(svc)
            speech = await client.add_session_message(
                "speech", "s1", {"text": "konnichiwa", "metadata": {"score": 0.9}}
            )
            with pytest.raises(ValueError, match="Unsupported session type"):
                await client.add_session_message("reading", "r1", {"text": "x"})
            return speech

    speech = asyncio.run(main())
    assert speech["metadata"] == {"type": "speech", "score": 0.9}
    assert speech["role"] == "user"


def test_offline_aware_message_is_delivered_on_reconnect() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0", online=False) as svc:
            client = SemanamiApi(svc)
            result = await client.add_message_offline_aware("chat", "c1", {"text": "later"})
            assert api.count("POST", "/chats/c1/messages") == 0
            report = await svc.set_online(True)
            return result, report

    result, report = asyncio.run(main())
    assert result is QUEUED
    assert report.succeeded == 1
    assert api.count("POST", "/chats/c1/messages") == 1


def test_progress_usage_and_health() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            client = SemanamiApi(svc)
            return (
                await client.fetch_learning_progress("s9", user_initiated=True),
                await client.fetch_usage_summary(),
                await client.check_health(),
            )

    progress, usage, health = asyncio.run(main())
    assert progress == {"session": "s9", "params": {"user_initiated": "true"}}
    assert usage == {"minutes": 12}
    assert health == {"status": "ok"}


def test_health_retries_server_errors() -> None:
    api = FakeApi(current_token="tok-0")
    api.fail_paths["/health"] = 503

    async def main():
        async with make_service(api, token="tok-0") as svc:
            with pytest.raises(ServerError):
                await SemanamiApi(svc).check_health(retries=2)

    asyncio.run(main())
    assert api.count("GET", "/health") == 3
