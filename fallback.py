"""
Ordered fallback strategies for data operations.

A ``FallbackChain`` tries each ``Strategy`` in turn. Infrastructure failures
(driver errors, unreachable database) are logged and the next strategy is
tried; business errors such as ``NotFound`` or a duplicate key propagate
untouched. When every strategy fails, the chain's exhaustion policy decides
the result: a degraded ``Outcome`` carrying a warning, or ``StoreUnavailable``.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import StoreUnavailable
from helpers import serialize_doc

logger = logging.getLogger(__name__)

RECOVERABLE = (StoreUnavailable, PyMongoError)


@dataclass
class Strategy:
    name: str
    run: Callable[[], Any]


@dataclass
class Outcome:
    value: Any
    source: str
    failures: List[Tuple[str, str]] = field(default_factory=list)
    degraded: bool = False
    warning: Optional[str] = None

    def envelope(self, **extra) -> dict:
        body = {"success": True, "data": serialize_doc(self.value), "source": self.source}
        if self.warning:
            body["warning"] = self.warning
        body.update({k: v for k, v in extra.items() if v is not None})
        return body


class FallbackChain:
    def __init__(
        self,
        operation: str,
        strategies: List[Strategy],
        on_exhausted: Optional[Callable[[List[Tuple[str, str]]], Outcome]] = None,
    ):
        if not strategies:
            raise ValueError("FallbackChain needs at least one strategy")
        self.operation = operation
        self.strategies = strategies
        self.on_exhausted = on_exhausted

    def execute(self) -> Outcome:
        failures: List[Tuple[str, str]] = []
        last_error: Optional[Exception] = None
        for strategy in self.strategies:
            try:
                value = strategy.run()
            except DuplicateKeyError:
                raise
            except RECOVERABLE as exc:
                logger.warning("%s: strategy '%s' failed: %s", self.operation, strategy.name, exc)
                failures.append((strategy.name, str(exc)))
                last_error = exc
                continue
            if failures:
                logger.info("%s: served by '%s' after %d failure(s)", self.operation, strategy.name, len(failures))
            return Outcome(value=value, source=strategy.name, failures=failures)

        logger.error("%s: all %d strategies failed", self.operation, len(self.strategies))
        if self.on_exhausted is not None:
            outcome = self.on_exhausted(failures)
            outcome.failures = failures
            outcome.degraded = True
            return outcome
        if isinstance(last_error, StoreUnavailable):
            raise last_error
        raise StoreUnavailable(f"{self.operation} failed: {last_error}") from last_error


def soft_empty(value: Any = None, warning: str = "Database unavailable, showing fallback data"):
    """Exhaustion policy for reads: succeed with an empty result and a warning."""
    empty = [] if value is None else value

    def policy(failures):
        return Outcome(value=empty, source="fallback", warning=warning)

    return policy


def run_chain(operation: str, *strategies: Strategy, on_exhausted=None) -> Outcome:
    return FallbackChain(operation, list(strategies), on_exhausted).execute()
