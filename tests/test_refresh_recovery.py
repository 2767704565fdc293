from __future__ import annotations

import asyncio

import pytest

from semanami_client.errors import AuthError, NetworkError
from semanami_client.http.refresh import RefreshPhase
from tests._helpers.fake_api import FakeApi, make_service


def test_expired_token_is_refreshed_and_request_replayed() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="stale") as svc:
            data = await svc.request_json("GET", "/chats")
            return data, svc.tokens.get(), svc.client.default_headers.get("Authorization")

    data, token, header = asyncio.run(main())
    assert data == [{"id": "c1", "title": "Greetings"}]
    assert token == "tok-1"
    assert header == "Bearer tok-1"
    assert api.count("POST", "/auth/refresh") == 1
    assert api.count("GET", "/chats") == 2
    assert api.calls[-1] == ("GET", "/chats", "Bearer tok-1")


def test_refresh_call_carries_no_bearer_token() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="stale") as svc:
            await svc.request_json("GET", "/chats")
            return svc.client.default_headers.get("Authorization")

    header = asyncio.run(main())
    refresh_headers = [auth for m, p, auth in api.calls if (m, p) == ("POST", "/auth/refresh")]
    assert refresh_headers == [None]
    assert header == "Bearer tok-1"


def test_concurrent_401s_share_one_refresh() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="stale") as svc:
            results = await asyncio.gather(*[svc.request_json("GET", "/chats") for _ in range(5)])
            return results, svc.client.refresher.refresh_calls

    results, refresh_calls = asyncio.run(main())
    assert len(results) == 5
    assert all(r == [{"id": "c1", "title": "Greetings"}] for r in results)
    assert refresh_calls == 1
    assert api.count("POST", "/auth/refresh") == 1


def test_replayed_request_is_never_retried_again() -> None:
    api = FakeApi(current_token="tok-0")
    api.fail_paths["/usage-summary"] = 401

    async def main():
        async with make_service(api, token="stale") as svc:
            with pytest.raises(AuthError):
                await svc.request("GET", "/usage-summary")

    asyncio.run(main())
    assert api.count("GET", "/usage-summary") == 2
    assert api.count("POST", "/auth/refresh") == 1


def test_auth_endpoint_401_is_never_intercepted() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="stale") as svc:
            with pytest.raises(AuthError):
                await svc.request("GET", "/auth/me")
            return svc.tokens.get()

    assert asyncio.run(main()) == "stale"
    assert api.count("POST", "/auth/refresh") == 0


def test_failed_refresh_clears_session_and_redirects_to_login() -> None:
    api = FakeApi(current_token="tok-0", refresh_ok=False)

    async def main():
        async with make_service(api, token="stale", path="/dashboard") as svc:
            with pytest.raises(AuthError):
                await svc.request("GET", "/chats")
            await asyncio.sleep(0.01)
            return svc

    svc = asyncio.run(main())
    assert svc.tokens.get() is None
    assert svc.auth_state.user is None
    assert svc.client.refresher.phase is RefreshPhase.failed
    assert svc.navigator.current_path == "/login"
    assert svc.navigator.history == ["/login"]


@pytest.mark.parametrize("page", ["/login", "/signup", "/register?next=/home"])
def test_failed_refresh_on_auth_page_does_not_redirect(page: str) -> None:
    api = FakeApi(current_token="tok-0", refresh_ok=False)

    async def main():
        async with make_service(api, token="stale", path=page) as svc:
            with pytest.raises(AuthError):
                await svc.request("GET", "/chats")
            await asyncio.sleep(0.01)
            return svc

    svc = asyncio.run(main())
    assert svc.tokens.get() is None
    assert svc.navigator.history == []
    assert svc.navigator.current_path == page


def test_no_refresh_while_auth_flow_in_progress() -> None:
    api = FakeApi(current_token="tok-0")

    async def main():
        async with make_service(api, token="stale") as svc:
            with svc.gate.guard("login"):
                with pytest.raises(AuthError):
                    await svc.request("GET", "/chats")
            return svc.tokens.get()

    assert asyncio.run(main()) == "stale"
    assert api.count("POST", "/auth/refresh") == 0


def test_explicit_refresh_failure_keeps_session() -> None:
    api = FakeApi(current_token="tok-0", refresh_ok=False)

    async def main():
        async with make_service(api, token="stale") as svc:
            with pytest.raises(AuthError):
                await svc.refresh()
            await asyncio.sleep(0.01)
            return svc

    svc = asyncio.run(main())
    assert svc.tokens.get() == "stale"
    assert svc.navigator.history == []
    assert svc.gate.active is False


def test_refresh_accepts_token_field() -> None:
    api = FakeApi(current_token="tok-0")
    api.refresh_field = "token"

    async def main():
        async with make_service(api, token="stale") as svc:
            await svc.request("GET", "/chats")
            return svc.tokens.get()

    assert asyncio.run(main()) == "tok-1"


def test_refresh_without_token_in_body_is_a_failure() -> None:
    api = FakeApi(current_token="tok-0")
    api.refresh_field = "expires_in"

    async def main():
        async with make_service(api, token="stale") as svc:
            with pytest.raises(AuthError, match="No access token"):
                await svc.request("GET", "/chats")
            return svc.tokens.get()

    assert asyncio.run(main()) is None


def test_network_failure_is_not_refreshed() -> None:
    api = FakeApi(current_token="tok-0")
    api.offline = True

    async def main():
        async with make_service(api, token="tok-0") as svc:
            with pytest.raises(NetworkError):
                await svc.request("GET", "/chats")
            return svc.tokens.get()

    assert asyncio.run(main()) == "tok-0"
    assert api.count("POST", "/auth/refresh") == 0
