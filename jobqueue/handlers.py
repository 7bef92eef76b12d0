"""Job handler registry used by workers."""

import inspect
from collections.abc import Callable
from typing import Optional


class HandlerRegistry:
    """Registry mapping job types to the coroutines that run them."""

    def __init__(self):
        self._handlers: dict[str, Callable] = {}

    def handler(self, job_type: str):
        """
        Decorator to register a job handler.

        Usage:
            @registry.handler("thumbnail.create")
            async def create_thumbnail(ctx, payload):
                ...
                return {"thumbnails": [...]}

        The return value is reported as the job's result. A job type can
        only have one handler, and handlers must be async since the worker
        awaits them.
        """

        def decorator(func: Callable):
            self.register(job_type, func)
            return func

        return decorator

    def register(self, job_type: str, func: Callable) -> None:
        """Register func as the handler for job_type."""
        if not inspect.iscoroutinefunction(func):
            raise TypeError(
                f"Handler for {job_type!r} must be an async function, got {func!r}"
            )
        if job_type in self._handlers:
            raise ValueError(f"A handler is already registered for {job_type!r}")
        self._handlers[job_type] = func

    def get_handler(self, job_type: str) -> Optional[Callable]:
        """Get the handler for a job type."""
        return self._handlers.get(job_type)

    def job_types(self) -> list[str]:
        """Job types this registry can run, sorted."""
        return sorted(self._handlers)

    def all_handlers(self) -> dict[str, Callable]:
        """Get all registered handlers."""
        return self._handlers.copy()

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers


# Global registry instance
handler_registry = HandlerRegistry()
