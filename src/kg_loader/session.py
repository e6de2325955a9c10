"""
Search session state machine.

A session maps user actions (start, typing a term, switching endpoint) to
pipeline runs and keeps the visible state::

    Idle -> Loading -> Results | Empty | Failed
    (any state) -> Loading   on a new trigger

Runs on a single asyncio event loop; the blocking pipeline is moved to a
worker thread with :func:`in_thread`.  Every trigger takes a new generation
number, and a run may only update the state while its generation is the
latest one, so a slow response can never overwrite a newer one.  After
:meth:`SearchSessionController.close` no run updates the state.

Usage:
    catalogue = CatalogueSearch(QueryPipeline.from_config(), cfg.endpoint())
    session = SearchSessionController(
        in_thread(lambda term, url: catalogue.search_datasets(term, url)),
        endpoint=cfg.sparql_endpoint,
        debounce_seconds=cfg.debounce_seconds,
        on_change=render,
    )
    session.start()
    session.set_term("salmonella")
    await session.wait()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from kg_loader.errors import EmptyEndpointError, LoaderError
from kg_loader.pipeline import PipelineResult
from kg_loader.sparql.results import RowSet

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, str], Awaitable[PipelineResult]]

GENERIC_FAILURE = "Failed to fetch or parse data from the SPARQL endpoint."


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESULTS = "results"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionState:
    """What the user currently sees."""

    status: SessionStatus = SessionStatus.IDLE
    term: str = ""
    endpoint: str = ""
    result: Optional[PipelineResult] = None
    message: Optional[str] = None
    error: Optional[Exception] = None
    generation: int = 0

    @property
    def rows(self) -> RowSet:
        return self.result.rows if self.result is not None else RowSet()


def in_thread(fn: Callable[[str, str], PipelineResult]) -> SearchFn:
    """Adapt a blocking ``(term, endpoint_url) -> PipelineResult`` callable."""

    async def run(term: str, endpoint: str) -> PipelineResult:
        return await asyncio.to_thread(fn, term, endpoint)

    return run


class SearchSessionController:
    """
    Owns the state of one search session.

    Must be driven from inside a running event loop.

    Args:
        search: Coroutine function running the pipeline for (term, endpoint URL)
        endpoint: Initial endpoint URL
        debounce_seconds: Quiet period after the last keystroke before a run
        listing_on_empty: Run the default listing when the term is cleared;
            when False, clearing the term just empties the results
        empty_message: Message shown for a run with zero rows
        on_change: Called with every new visible state
        on_error: Error signal for the hosting context: the message when a
            run fails, None when a new run starts
        sleep: Timer used for debouncing (tests inject a fake one)
    """

    def __init__(
        self,
        search: SearchFn,
        endpoint: str = "",
        *,
        debounce_seconds: float = 0.5,
        listing_on_empty: bool = True,
        empty_message: str = "No datasets found matching your query.",
        on_change: Optional[Callable[[SessionState], None]] = None,
        on_error: Optional[Callable[[Optional[str]], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._search = search
        self.debounce_seconds = debounce_seconds
        self.listing_on_empty = listing_on_empty
        self.empty_message = empty_message
        self._on_change = on_change
        self._on_error = on_error
        self._sleep = sleep

        self._state = SessionState(endpoint=endpoint)
        self._generation = 0
        self._pending: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()
        self._started = False
        self._closed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run the initial listing once, if an endpoint is configured."""
        if self._started or self._closed:
            return
        self._started = True
        if self._state.endpoint.strip():
            self._run_now("")

    def set_term(self, term: str) -> None:
        if self._closed:
            return
        self._state = replace(self._state, term=term)
        if term.strip():
            self._schedule(term)
        elif self.listing_on_empty:
            self._run_now("")
        else:
            self._cancel_pending()
            self._generation += 1
            self._publish(
                replace(
                    self._state,
                    status=SessionStatus.IDLE,
                    result=None,
                    message=None,
                    error=None,
                    generation=self._generation,
                )
            )

    def set_endpoint(self, url: str) -> None:
        if self._closed:
            return
        self._state = replace(self._state, endpoint=url)
        if self._state.term.strip():
            self._schedule(self._state.term)

    def close(self) -> None:
        """Tear down: cancel the pending timer and ignore every later result."""
        self._closed = True
        self._cancel_pending()

    async def wait(self) -> None:
        """Wait until no timer is pending and no run is in flight."""
        while True:
            tasks = [t for t in (self._pending, *self._runs) if t is not None and not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def _run_now(self, term: str) -> None:
        self._cancel_pending()
        self._launch(self._next_generation(), term, self._state.endpoint)

    def _schedule(self, term: str) -> None:
        self._cancel_pending()
        generation = self._next_generation()
        endpoint = self._state.endpoint
        self._pending = asyncio.get_running_loop().create_task(
            self._debounced(generation, term, endpoint)
        )

    async def _debounced(self, generation: int, term: str, endpoint: str) -> None:
        await self._sleep(self.debounce_seconds)
        if self._pending is asyncio.current_task():
            self._pending = None
        self._launch(generation, term, endpoint)

    def _launch(self, generation: int, term: str, endpoint: str) -> None:
        task = asyncio.get_running_loop().create_task(self._execute(generation, term, endpoint))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _publish(self, state: SessionState) -> None:
        self._state = state
        if self._on_change is not None:
            self._on_change(state)

    def _signal_error(self, message: Optional[str]) -> None:
        if self._on_error is not None:
            self._on_error(message)

    async def _execute(self, generation: int, term: str, endpoint: str) -> None:
        if not self._is_current(generation):
            return

        self._publish(
            replace(
                self._state,
                status=SessionStatus.LOADING,
                message=None,
                error=None,
                generation=generation,
            )
        )
        self._signal_error(None)

        try:
            if not endpoint.strip():
                raise EmptyEndpointError()
            result = await self._search(term, endpoint)
        except LoaderError as e:
            self._fail(generation, str(e), e)
            return
        except Exception as e:
            logger.exception("Search for %r on %s failed", term, endpoint)
            self._fail(generation, GENERIC_FAILURE, e)
            return

        if not self._is_current(generation):
            logger.debug("Discarding stale result of generation %d", generation)
            return

        if len(result.rows) == 0:
            self._publish(
                replace(
                    self._state,
                    status=SessionStatus.EMPTY,
                    result=result,
                    message=self.empty_message,
                    generation=generation,
                )
            )
        else:
            self._publish(
                replace(
                    self._state,
                    status=SessionStatus.RESULTS,
                    result=result,
                    message=None,
                    generation=generation,
                )
            )

    def _fail(self, generation: int, message: str, error: Exception) -> None:
        if not self._is_current(generation):
            logger.debug("Discarding stale failure of generation %d: %s", generation, message)
            return
        self._publish(
            replace(
                self._state,
                status=SessionStatus.FAILED,
                result=None,
                message=message,
                error=error,
                generation=generation,
            )
        )
        self._signal_error(message)
