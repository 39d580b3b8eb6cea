"""Publish/subscribe channel with namespaced and wildcard topics.

Topics are colon-delimited (``event:add``, ``navigation:next``).  A topic
containing ``*`` registers a wildcard subscription; each ``*`` matches any
run of characters and the pattern is anchored at both ends.  Patterns are
compiled once at subscribe time.

Delivery is synchronous: :meth:`EventBus.emit` calls every matching
handler before it returns.  Handlers may return awaitables; those are
collected on the returned :class:`EmitResult`, which can be awaited to
settle them all.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import re
from collections import defaultdict
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)

Handler = Callable[[Any, str], Any]
"""Bus handler: called as ``handler(payload, topic)``."""

HandlerErrorCallback = Callable[[str, Handler, BaseException], None]


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a ``*`` glob into an anchored regular expression.

    Everything except ``*`` is matched literally, so topic names containing
    regex metacharacters cannot change the meaning of a pattern.
    """
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def _running_loop() -> asyncio.AbstractEventLoop | None:
    with contextlib.suppress(RuntimeError):
        return asyncio.get_running_loop()
    return None


@dataclass(slots=True, eq=False)
class Subscription:
    """One handler registered against an exact topic or a wildcard pattern."""

    topic: str
    handler: Handler
    once: bool = False
    priority: int = 0
    matcher: re.Pattern[str] | None = None
    active: bool = True

    @property
    def is_wildcard(self) -> bool:
        return self.matcher is not None

    def matches(self, topic: str) -> bool:
        if self.matcher is None:
            return topic == self.topic
        return self.matcher.fullmatch(topic) is not None


@dataclass(eq=False)
class EmitResult:
    """Outcome of one :meth:`EventBus.emit` call.

    ``delivered`` and the synchronous part of ``errors`` are final as soon
    as ``emit`` returns.  Awaiting the result settles every awaitable the
    handlers returned; failures among them are reported to the bus and
    appended to ``errors``.
    """

    topic: str
    delivered: int = 0
    errors: list[BaseException] = field(default_factory=list)
    _tasks: list[tuple[Handler, asyncio.Future[Any]]] = field(default_factory=list, repr=False)
    _deferred: list[tuple[Handler, Awaitable[Any]]] = field(default_factory=list, repr=False)
    _report: HandlerErrorCallback | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def pending(self) -> int:
        """Number of handler awaitables not yet settled."""
        return len(self._deferred) + sum(1 for _, task in self._tasks if not task.done())

    def _add(self, handler: Handler, awaitable: Awaitable[Any]) -> None:
        if _running_loop() is None:
            # No loop to schedule on; the awaitable runs when the result is awaited.
            self._deferred.append((handler, awaitable))
            return
        self._track(handler, awaitable)

    def _track(self, handler: Handler, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)

        def _settle(done: asyncio.Future[Any]) -> None:
            if done.cancelled():
                return
            exc = done.exception()
            if exc is None:
                return
            self.errors.append(exc)
            if self._report is not None:
                self._report(self.topic, handler, exc)

        task.add_done_callback(_settle)
        self._tasks.append((handler, task))

    async def wait(self) -> list[Any]:
        """Settle every handler awaitable and return the successful results."""
        deferred, self._deferred = self._deferred, []
        for handler, awaitable in deferred:
            self._track(handler, awaitable)
        if not self._tasks:
            return []
        outcomes = await asyncio.gather(*(task for _, task in self._tasks), return_exceptions=True)
        return [value for value in outcomes if not isinstance(value, BaseException)]

    def __await__(self) -> Generator[Any, None, list[Any]]:
        return self.wait().__await__()

    def discard(self) -> int:
        """Close deferred awaitables that will never be awaited.

        Each one is logged at WARNING with its handler.  Returns how many
        were dropped.  Tasks already scheduled on a loop are left alone.
        """
        deferred, self._deferred = self._deferred, []
        for handler, awaitable in deferred:
            _logger.warning("Dropping unsettled result of handler %r for %s", handler, self.topic)
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
        return len(deferred)


class EventBus:
    """Decoupled one-to-many signaling for one calendar instance.

    Exact-topic handlers run first, in descending ``priority`` order with
    ties kept in registration order.  Wildcard handlers run afterwards in
    registration order.  A handler that raises is logged and skipped; it
    never stops delivery to the remaining handlers and never reaches the
    caller of :meth:`emit`.
    """

    def __init__(self, *, on_handler_error: HandlerErrorCallback | None = None) -> None:
        self._topics: dict[str, list[Subscription]] = {}
        self._wildcards: list[Subscription] = []
        self._on_handler_error = on_handler_error
        self._error_counts: dict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on(
        self,
        topic: str,
        handler: Handler,
        *,
        once: bool = False,
        priority: int = 0,
    ) -> Callable[[], None]:
        """Subscribe *handler* to *topic* and return an unsubscribe function."""
        if not isinstance(topic, str) or not topic.strip():
            raise ValueError("topic must be a non-empty string")
        if not callable(handler):
            raise TypeError("handler must be callable")

        if "*" in topic:
            sub = Subscription(topic, handler, once=once, priority=priority, matcher=compile_pattern(topic))
            self._wildcards.append(sub)
        else:
            sub = Subscription(topic, handler, once=once, priority=priority)
            handlers = self._topics.setdefault(topic, [])
            index = len(handlers)
            for i, existing in enumerate(handlers):
                if existing.priority < priority:
                    index = i
                    break
            handlers.insert(index, sub)

        def unsubscribe() -> None:
            self._discard(sub)

        return unsubscribe

    def once(self, topic: str, handler: Handler, *, priority: int = 0) -> Callable[[], None]:
        """Subscribe *handler* for a single delivery."""
        return self.on(topic, handler, once=True, priority=priority)

    def off(self, topic: str, handler: Handler) -> None:
        """Remove the first subscription of *handler* on *topic* (exact or pattern)."""
        candidates = self._wildcards if "*" in topic else self._topics.get(topic, [])
        for sub in candidates:
            if sub.topic == topic and sub.handler == handler:
                self._discard(sub)
                return

    def off_wildcard(self, pattern: str) -> None:
        """Remove every wildcard subscription registered with *pattern*."""
        for sub in [s for s in self._wildcards if s.topic == pattern]:
            self._discard(sub)

    def off_all(self, handler: Handler) -> None:
        """Remove *handler* from every topic and pattern it is attached to."""
        for handlers in list(self._topics.values()):
            for sub in [s for s in handlers if s.handler == handler]:
                self._discard(sub)
        for sub in [s for s in self._wildcards if s.handler == handler]:
            self._discard(sub)

    def clear(self) -> None:
        """Remove every subscription."""
        for handlers in self._topics.values():
            for sub in handlers:
                sub.active = False
        for sub in self._wildcards:
            sub.active = False
        self._topics.clear()
        self._wildcards.clear()

    def _discard(self, sub: Subscription) -> None:
        sub.active = False
        if sub.is_wildcard:
            with contextlib.suppress(ValueError):
                self._wildcards.remove(sub)
            return
        handlers = self._topics.get(sub.topic)
        if handlers is None:
            return
        with contextlib.suppress(ValueError):
            handlers.remove(sub)
        if not handlers:
            del self._topics[sub.topic]

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def emit(self, topic: str, payload: Any = None) -> EmitResult:
        """Deliver *payload* to every handler matching *topic*."""
        result = EmitResult(topic=topic, _report=self._report)

        for sub in list(self._topics.get(topic, ())):
            if not sub.active:
                continue
            if sub.once:
                self._discard(sub)
            self._invoke(sub, payload, topic, result)

        # One-shot wildcard handlers are dropped only after the full pass.
        fired_once: list[Subscription] = []
        for sub in list(self._wildcards):
            if not sub.active or not sub.matches(topic):
                continue
            if sub.once:
                fired_once.append(sub)
            self._invoke(sub, payload, topic, result)
        for sub in fired_once:
            self._discard(sub)

        return result

    def _invoke(self, sub: Subscription, payload: Any, topic: str, result: EmitResult) -> None:
        try:
            outcome = sub.handler(payload, topic)
        except Exception as exc:
            result.errors.append(exc)
            self._report(topic, sub.handler, exc)
            return
        result.delivered += 1
        if inspect.isawaitable(outcome):
            result._add(sub.handler, outcome)  # noqa: SLF001

    def _report(self, topic: str, handler: Handler, exc: BaseException) -> None:
        self._error_counts[topic] += 1
        _logger.error("Error in event handler %r for %s", handler, topic, exc_info=exc)
        if self._on_handler_error is None:
            return
        try:
            self._on_handler_error(topic, handler, exc)
        except Exception:
            _logger.warning("on_handler_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def event_names(self) -> list[str]:
        """Exact topics that currently have at least one handler."""
        return list(self._topics)

    def handler_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def wildcard_handler_count(self) -> int:
        return len(self._wildcards)

    def total_handler_count(self) -> int:
        return len(self._wildcards) + sum(len(handlers) for handlers in self._topics.values())

    def error_counts(self) -> dict[str, int]:
        """Return per-topic handler failure counts."""
        return dict(self._error_counts)
