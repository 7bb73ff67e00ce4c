"""Email job handler registry."""

from collections.abc import Callable
from typing import Optional


class JobRegistry:
    """Maps job_type values to async handler functions."""

    def __init__(self):
        self._handlers: dict[str, Callable] = {}

    def handler(self, job_type: str):
        """
        Decorator to register a handler for a job type.

        Usage:
            @registry.handler("daily_digest")
            async def daily_digest(ctx, job) -> bool:
                ...

        A handler returns True when the job is done and False (or raises)
        when it should go through failure handling.
        """

        def decorator(func: Callable):
            self._handlers[job_type] = func
            return func

        return decorator

    def get_handler(self, job_type: str) -> Optional[Callable]:
        return self._handlers.get(job_type)

    def all_handlers(self) -> dict[str, Callable]:
        return self._handlers.copy()


# Registry the built-in email handlers attach to
email_job_registry = JobRegistry()
