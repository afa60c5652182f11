"""Session registry: session id -> live SSE transport."""

from __future__ import annotations as _annotations

from mcp_starlette_adapter.exceptions import SessionConflictError
from mcp_starlette_adapter.sse import SseTransport
from mcp_starlette_adapter.utilities.logging import get_logger

logger = get_logger(__name__)


class SessionRegistry:
    """Transports of the currently open SSE streams, keyed by session id.

    One registry belongs to one adapter. All mutation happens on the event loop
    without awaiting, so no lock is needed.
    """

    def __init__(self) -> None:
        self._transports: dict[str, SseTransport] = {}

    def register(self, transport: SseTransport) -> None:
        """Record an open transport.

        Raises:
            SessionConflictError: if its session id is already registered
        """
        session_id = transport.session_id
        if session_id in self._transports:
            raise SessionConflictError(f"Session already registered: {session_id}")
        self._transports[session_id] = transport
        logger.debug(f"Session registered: {session_id} ({len(self._transports)} active)")

    def get(self, session_id: str) -> SseTransport | None:
        return self._transports.get(session_id)

    def remove(self, session_id: str) -> SseTransport | None:
        transport = self._transports.pop(session_id, None)
        if transport is not None:
            logger.debug(f"Session removed: {session_id} ({len(self._transports)} active)")
        return transport

    def session_ids(self) -> list[str]:
        return list(self._transports)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._transports

    def __len__(self) -> int:
        return len(self._transports)
