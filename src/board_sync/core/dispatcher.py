"""Command dispatcher.

Every state-mutating or query intent goes through :class:`CommandDispatcher`.
Handlers are registered by command name; registering a name again replaces
its handler, which is how handlers are reconfigured at runtime.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from board_sync.exceptions import (
    DispatcherNotReadyError,
    UnknownCommandError,
    ValidationError,
)
from board_sync.models.case import Case
from board_sync.models.commands import BatchResult, Command, CommandResult

logger = logging.getLogger(__name__)


@dataclass
class CommandContext:
    """Shared read accessors handed to every handler."""

    get_case: Callable[[str], Optional[Case]]
    get_actor: Callable[[], str]


Handler = Callable[[Any, CommandContext], Awaitable[Any]]


@dataclass
class _Registration:
    handler: Handler
    payload_model: Optional[Type[BaseModel]]


class Middleware:
    """Observer invoked around every dispatch.

    Hooks see the command and its outcome but cannot change either; errors
    raised inside a hook are logged and ignored.
    """

    async def before(self, command: Command) -> None:
        pass

    async def after(self, command: Command, result: Any) -> None:
        pass

    async def on_error(self, command: Command, error: BaseException) -> None:
        pass


class LoggingMiddleware(Middleware):
    """Logs every dispatch and its outcome."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def before(self, command: Command) -> None:
        logger.log(self.level, f"[Command] {command.name} {command.payload}")

    async def after(self, command: Command, result: Any) -> None:
        logger.log(self.level, f"[Command] {command.name} succeeded")

    async def on_error(self, command: Command, error: BaseException) -> None:
        logger.warning(f"[Command] {command.name} failed: {error}")


class BatchErrorPolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


class CommandDispatcher:
    """Typed registry routing commands to handlers through middleware."""

    def __init__(self):
        self._registry: Dict[str, _Registration] = {}
        self._middleware: List[Middleware] = []
        self._context: Optional[CommandContext] = None

    def register(
        self,
        name: str,
        handler: Handler,
        payload_model: Optional[Type[BaseModel]] = None,
    ) -> None:
        """Bind ``handler`` to ``name``, replacing any existing binding.

        When ``payload_model`` is given, payloads are validated into it and
        the handler receives the model instance instead of the raw dict.
        """
        if name in self._registry:
            logger.info(f"Replacing handler for {name}")
        self._registry[name] = _Registration(handler, payload_model)

    def unregister(self, name: str) -> None:
        self._registry.pop(name, None)

    def has_handler(self, name: str) -> bool:
        return name in self._registry

    @property
    def registered_commands(self) -> List[str]:
        return list(self._registry)

    def set_context(self, context: CommandContext) -> None:
        self._context = context

    def use(self, middleware: Middleware) -> Callable[[], None]:
        """Append a middleware; returns a callable that removes it again."""
        self._middleware.append(middleware)

        def remove() -> None:
            if middleware in self._middleware:
                self._middleware.remove(middleware)

        return remove

    async def _notify(self, hook: str, *args: Any) -> None:
        for middleware in list(self._middleware):
            try:
                await getattr(middleware, hook)(*args)
            except Exception as e:
                logger.error(f"Middleware {type(middleware).__name__}.{hook} failed: {e}")

    def _prepare(self, command: Command) -> Any:
        registration = self._registry.get(command.name)
        if registration is None:
            raise UnknownCommandError(command.name)
        if registration.payload_model is None:
            return registration.handler, command.payload
        try:
            payload = registration.payload_model.model_validate(command.payload)
        except PydanticValidationError as e:
            raise ValidationError(command.name, str(e)) from e
        return registration.handler, payload

    async def dispatch(self, command: Command) -> Any:
        """Run ``command`` and return its handler's result.

        Raises:
            UnknownCommandError: no handler is registered for the name
            ValidationError: the payload does not fit the handler's model
            DispatcherNotReadyError: no context has been set
            Exception: whatever the handler raised, unmodified
        """
        await self._notify("before", command)
        try:
            handler, payload = self._prepare(command)
            if self._context is None:
                raise DispatcherNotReadyError("Dispatcher context not initialized")
            result = await handler(payload, self._context)
        except Exception as e:
            await self._notify("on_error", command, e)
            raise
        await self._notify("after", command, result)
        return result

    async def dispatch_batch(
        self,
        commands: Iterable[Command],
        on_error: BatchErrorPolicy = BatchErrorPolicy.ABORT,
    ) -> BatchResult:
        """Run commands one after another.

        With ``BatchErrorPolicy.ABORT`` the first failure stops the batch and
        is returned as ``BatchResult.error``; later commands never run. With
        ``BatchErrorPolicy.CONTINUE`` every command runs and failures are
        recorded per command.
        """
        batch = BatchResult()
        for command in commands:
            try:
                value = await self.dispatch(command)
            except Exception as e:
                if on_error is BatchErrorPolicy.ABORT:
                    batch.error = e
                    batch.failed_command = command
                    return batch
                batch.results.append(
                    CommandResult(command=command, success=False, error=str(e))
                )
                continue
            batch.results.append(CommandResult(command=command, success=True, value=value))
        return batch
