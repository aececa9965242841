"""
graphql_gateway.fault_tracking - Interface to the external fault-tracking sink.

The gateway only needs two operations from a fault tracker: record an
exception with contextual tags, and flush what has been recorded. Any
Sentry-style client can be adapted to FaultTracker.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from aws_lambda_powertools import Logger

logger = Logger(service="graphql-gateway")


class FaultTracker(Protocol):
    def capture_exception(self, error: BaseException, tags: Mapping[str, Any]) -> None: ...

    def flush(self) -> None: ...


class LoggingFaultTracker:
    """Fault tracker that writes captured exceptions to the structured log.

    Stateless, so one instance can be shared by every request in the process.
    """

    def capture_exception(self, error: BaseException, tags: Mapping[str, Any]) -> None:
        logger.error(
            "Fault captured",
            exc_info=(type(error), error, error.__traceback__),
            extra={"fault_type": type(error).__name__, "fault_tags": dict(tags)},
        )

    def flush(self) -> None:
        logger.debug("Fault tracker flushed")
