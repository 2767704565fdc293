from __future__ import annotations

from types import TracebackType

from semanami_client.storage import ClientStorage
from semanami_client.utils.log import logger

AUTH_IN_PROGRESS_KEY = "auth_in_progress"


class AuthFlowGuard:
    """
    Disposable handle for one explicit auth operation.

    Usable as `with` or `async with`; release() is idempotent so the flag is
    dropped exactly once whatever path leaves the block.
    """

    def __init__(self, gate: AuthFlowGate, operation: str) -> None:
        self._gate = gate
        self.operation = str(operation)
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._gate.end(operation=self.operation)

    def __enter__(self) -> AuthFlowGuard:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    async def __aenter__(self) -> AuthFlowGuard:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class AuthFlowGate:
    """
    Marks "an explicit auth operation is in progress".

    While active, the response pipeline neither refreshes automatically nor
    redirects. Overlapping operations are counted; the flag drops when the last
    one ends. The in-process counter is authoritative; the storage key is a
    mirror for other observers sharing the same storage.
    """

    def __init__(self, storage: ClientStorage | None = None) -> None:
        self._storage = storage
        self._depth = 0
        if storage is not None and storage.get(AUTH_IN_PROGRESS_KEY) is not None:
            # Left behind by a process that died mid-flow.
            logger.info("auth_flow_stale_marker_cleared")
            storage.delete(AUTH_IN_PROGRESS_KEY)

    @property
    def active(self) -> bool:
        return self._depth > 0

    def begin(self, operation: str = "auth") -> AuthFlowGuard:
        self._depth += 1
        if self._depth == 1 and self._storage is not None:
            self._storage.set(AUTH_IN_PROGRESS_KEY, "true")
        logger.debug("auth_flow_begin", operation=str(operation), depth=self._depth)
        return AuthFlowGuard(self, operation)

    def end(self, *, operation: str = "auth") -> None:
        if self._depth <= 0:
            self._depth = 0
            return
        self._depth -= 1
        if self._depth == 0 and self._storage is not None:
            self._storage.delete(AUTH_IN_PROGRESS_KEY)
        logger.debug("auth_flow_end", operation=str(operation), depth=self._depth)

    def guard(self, operation: str = "auth") -> AuthFlowGuard:
        return self.begin(operation)
