from __future__ import annotations

from typing import Any

from semanami_client.errors import NetworkError, ServerError
from semanami_client.http import endpoints
from semanami_client.service import AuthResilienceService
from semanami_client.utils.log import logger
from semanami_client.utils.retry import retry_async

SESSION_TYPES = ("chat", "speech")


class SemanamiApi:
    """
    Typed calls for the non-auth endpoints.

    Everything goes through the service's ApiClient, so the bearer token,
    refresh-on-401 and error classification apply uniformly.
    """

    def __init__(self, service: AuthResilienceService) -> None:
        self.service = service

    # --- chats ---
    async def fetch_chats(self) -> Any:
        return await self.service.request_json("GET", endpoints.CHATS)

    async def fetch_chat(self, chat_id: str) -> Any:
        return await self.service.request_json("GET", endpoints.chat_path(chat_id))

    async def create_chat(
        self,
        *,
        scenario_key: str | None = None,
        feature: str | None = None,
        title: str | None = None,
        prompt: str | None = None,
    ) -> Any:
        payload: dict[str, Any] = {
            "scenarioKey": scenario_key,
            "feature": feature or "chat",
            "title": title or "",
        }
        if prompt is not None:
            payload["prompt"] = prompt
        logger.info("chat_create", feature=payload["feature"])
        return await self.service.request_json("POST", endpoints.CHATS, json=payload)

    async def add_message(self, chat_id: str, *, role: str, text: str) -> Any:
        return await self.service.request_json(
            "POST", endpoints.chat_messages_path(chat_id), json={"role": role, "text": text}
        )

    async def rename_chat(self, chat_id: str, title: str) -> Any:
        # Renames are recorded as a system message carrying the new title.
        return await self.service.request_json(
            "POST",
            endpoints.chat_messages_path(chat_id),
            json={"role": "system", "text": title, "metadata": {"type": "rename"}},
        )

    async def add_speech_message(
        self,
        session_id: str,
        *,
        text: str,
        role: str = "user",
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        meta = {"type": "speech", **dict(metadata or {})}
        return await self.service.request_json(
            "POST",
            endpoints.chat_messages_path(session_id),
            json={"role": role or "user", "text": text, "metadata": meta},
        )

    async def add_session_message(self, session_type: str, session_id: str, message: dict[str, Any]) -> Any:
        if session_type == "chat":
            return await self.add_message(
                session_id, role=str(message.get("role") or "user"), text=str(message.get("text") or "")
            )
        if session_type == "speech":
            return await self.add_speech_message(
                session_id,
                text=str(message.get("text") or ""),
                role=str(message.get("role") or "user"),
                metadata=message.get("metadata"),
            )
        raise ValueError(f"Unsupported session type: {session_type}")

    async def add_message_offline_aware(
        self, session_type: str, session_id: str, message: dict[str, Any]
    ) -> Any:
        """Send now, or queue for the next online transition (returns QUEUED)."""
        if session_type not in SESSION_TYPES:
            raise ValueError(f"Unsupported session type: {session_type}")
        return await self.service.queue_or_run(
            lambda: self.add_session_message(session_type, session_id, message),
            label=f"{session_type}:{session_id}:message",
        )

    # --- progress / usage / health ---
    async def fetch_learning_progress(self, session_id: str, *, user_initiated: bool = False) -> Any:
        return await self.service.request_json(
            "GET",
            endpoints.learning_progress_path(session_id),
            params={"user_initiated": "true" if user_initiated else "false"},
        )

    async def fetch_usage_summary(self) -> Any:
        return await self.service.request_json("GET", endpoints.USAGE_SUMMARY)

    async def check_health(self, *, retries: int | None = None) -> Any:
        """
        GET /health, retrying network failures and 5xx with backoff.

        Retries default to RETRY_MAX_ATTEMPTS; pass 0 for a single attempt.
        """
        pub = self.service.settings.public
        n = pub.retry_max_attempts if retries is None else retries

        def _log_retry(attempt: int, delay: float, ex: BaseException) -> None:
            logger.info("health_retry", attempt=attempt, delay_s=round(delay, 2), error=type(ex).__name__)

        return await retry_async(
            lambda: self.service.request_json("GET", endpoints.HEALTH),
            retries=max(0, int(n)),
            base=pub.retry_base_delay_sec,
            retry_on=(NetworkError, ServerError),
            on_retry=_log_retry,
        )
