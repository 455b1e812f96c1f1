"""IPC command dispatcher and base handler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from reelrelay.infrastructure.logger import logger

if TYPE_CHECKING:
    from reelrelay.ipc.watcher import IpcDeps


class IpcHandlerError(Exception):
    """Error raised by IPC handlers for expected failures."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


# Returned by a handler that answers later through HandlerContext.reply
DEFERRED: Any = object()

Reply = Callable[[dict[str, Any]], None]


@dataclass
class HandlerContext:
    deps: IpcDeps
    request_id: str | None = None
    reply: Reply | None = None  # writes the response for request_id; None without one


class IpcCommandHandler(ABC):
    """Base class for IPC command handlers.

    ``execute`` returns the response body for the caller, None when the
    command has nothing to report beyond success, or ``DEFERRED`` when it
    will answer through ``context.reply`` once background work finishes.
    """

    @property
    @abstractmethod
    def command(self) -> str: ...

    @abstractmethod
    async def validate(self, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def execute(self, payload: Any, context: HandlerContext) -> dict[str, Any] | None: ...

    async def handle(self, data: dict[str, Any], deps: IpcDeps, reply: Reply | None = None) -> dict[str, Any] | None:
        context = HandlerContext(deps=deps, request_id=data.get("requestId"), reply=reply)
        validated = await self.validate(data)
        return await self.execute(validated, context)


class IpcCommandDispatcher:
    """Routes IPC commands to registered handlers and shapes the response."""

    def __init__(self, handlers: list[IpcCommandHandler]) -> None:
        self._handlers: dict[str, IpcCommandHandler] = {h.command: h for h in handlers}

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(
        self, data: dict[str, Any], deps: IpcDeps, reply: Reply | None = None
    ) -> dict[str, Any] | None:
        """Response for the caller, or None when the handler answers later through ``reply``."""
        command_type = data.get("type")
        handler = self._handlers.get(command_type)  # type: ignore[arg-type]
        if not handler:
            logger.warning("Unknown IPC command type", type=command_type)
            return {"ok": False, "error": f"Unknown command: {command_type}"}
        try:
            body = await handler.handle(data, deps, reply)
        except IpcHandlerError as err:
            logger.warning(err.args[0], **{"command": command_type, **err.details})
            return {"ok": False, "error": err.args[0], "details": err.details}
        if body is DEFERRED:
            return None
        return {"ok": True, **(body or {})}
