"""
Request Router — primary first, secondary on any primary failure.

Every logical operation is an adapter method name. The primary is tried on
every call (no breaker, no skip-on-repeated-failure), so a dead ERP costs
its full timeout before the fallback runs. The two attempts are always
sequential, never raced.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Any, Optional

from backend.base import BackendAdapter
from backend.errors import BothBackendsFailed
from models.schemas import BackendKind

logger = structlog.get_logger()


@dataclass
class RoutedResult:
    value: Any
    source: BackendKind
    primary_error: Optional[BaseException] = None


class RequestRouter:

    def __init__(self, primary: BackendAdapter, secondary: BackendAdapter):
        self.primary = primary
        self.secondary = secondary

    async def route(self, operation: str, *args: Any, **kwargs: Any) -> RoutedResult:
        """
        Run `operation` on the primary, falling back to the secondary once.

        Raises BothBackendsFailed (carrying both causes) if neither answers.
        An operation missing from an adapter is an AttributeError, not a fallback.
        """
        primary_call = getattr(self.primary, operation)
        secondary_call = getattr(self.secondary, operation)

        try:
            value = await primary_call(*args, **kwargs)
            return RoutedResult(value=value, source=BackendKind.PRIMARY)
        except Exception as e:
            primary_error = e
            logger.warning("primary_call_failed", operation=operation,
                           error_type=type(e).__name__, error=str(e))

        try:
            value = await secondary_call(*args, **kwargs)
        except Exception as e:
            logger.error("both_backends_failed", operation=operation,
                         primary_error=str(primary_error), secondary_error=str(e))
            raise BothBackendsFailed(operation, primary_error, e) from e

        logger.info("fallback_succeeded", operation=operation)
        return RoutedResult(value=value, source=BackendKind.SECONDARY, primary_error=primary_error)
