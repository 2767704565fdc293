from __future__ import annotations

import asyncio

from semanami_client.service import SESSION_TAKEN_OVER_MESSAGE
from tests._helpers.fake_api import FakeApi, make_service


def test_beat_only_after_activity() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            await svc.initialize()
            first = await svc.heartbeat.beat()
            second = await svc.heartbeat.beat()
            svc.heartbeat.touch()
            third = await svc.heartbeat.beat()
            return first, second, third

    assert asyncio.run(main()) == (True, False, True)
    assert api.count("GET", "/auth/session-check") == 2


def test_session_taken_over_logs_out_locally() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            await svc.initialize()
            api.session_taken_over = True
            await svc.heartbeat.beat()
            await asyncio.sleep(0.01)
            return svc

    svc = asyncio.run(main())
    assert svc.tokens.get() is None
    assert svc.auth_state.is_authenticated is False
    assert svc.auth_state.session_conflict.message == SESSION_TAKEN_OVER_MESSAGE
    assert svc.navigator.current_path == "/login"
    assert api.count("POST", "/auth/logout") == 0


def test_no_beat_when_signed_out() -> None:
    api = FakeApi(current_token=None)

    async def main():
        async with make_service(api) as svc:
            return await svc.heartbeat.beat()

    assert asyncio.run(main()) is False
    assert api.count("GET", "/auth/session-check") == 0


def test_background_loop_start_stop() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="tok-0") as svc:
            await svc.initialize()
            svc.heartbeat.interval_s = 0.01
            svc.heartbeat.start()
            svc.heartbeat.start()
            await asyncio.sleep(0.05)
            assert svc.heartbeat.running
            await svc.heartbeat.stop()
            await svc.heartbeat.stop()
            return svc.heartbeat.running

    assert asyncio.run(main()) is False
    assert api.count("GET", "/auth/session-check") >= 1
