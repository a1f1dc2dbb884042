"""
Lifecycle / Staleness Controller
================================

ModelSession is the public surface of the invocation layer. One session
corresponds to one logical caller: it holds the observable output and
guarantees that only the most recent request for the caller's inputs can
change it.

Per-invocation state machine:

    IDLE -> DISPATCHING -> {STREAMING | AWAITING_SYNC} -> {COMPLETED | SUPERSEDED | FAILED}

SUPERSEDED is reachable from any non-terminal state as soon as the caller's
tag changes; STOPPED is the explicit-cancel counterpart. Both tear down the
connection and have no other observable effect.

Invariants:
- tag = base_prompt + prompt + input
- Exactly one StreamState is live; replacing it happens synchronously inside
  submit(), so two states are never allowed to publish at the same time
- A state publishes only while it is live AND its tag is the current tag
- Same-tag submits reuse the live state instead of re-dispatching
- No exception crosses invoke()/submit(); failures land in result.error
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

from .config import Preferences
from .errors import ConfigurationError, InvocationError, TemplateError
from .managed import ManagedService
from .registry import ModelRegistry
from .request_builder import build_request_body
from .resolver import ModelResolver, ResolvedModel
from .stream import StreamAccumulator, decode_sync_output
from .transport import HttpDispatcher
from .types import (
    BuiltInBackend,
    HttpBackend,
    InvalidBackend,
    InvocationResult,
    Model,
    PendingBackend,
)

logger = logging.getLogger(__name__)

EMPTY_PROMPT_ERROR = "Prompt cannot be empty"
INVALID_ENDPOINT_ERROR = "Invalid Endpoint"

_UNSET = object()


class InvocationPhase(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    AWAITING_SYNC = "awaiting_sync"
    COMPLETED = "completed"
    SUPERSEDED = "superseded"
    STOPPED = "stopped"
    FAILED = "failed"


TERMINAL_PHASES = frozenset(
    {
        InvocationPhase.COMPLETED,
        InvocationPhase.SUPERSEDED,
        InvocationPhase.STOPPED,
        InvocationPhase.FAILED,
    }
)


@dataclass(eq=False)
class StreamState:
    """One in-flight invocation: its tag, accumulated text and teardown handle."""

    tag: str
    text: str = ""
    phase: InvocationPhase = InvocationPhase.IDLE
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    subscribers: List["asyncio.Queue[Optional[InvocationResult]]"] = field(
        default_factory=list, repr=False
    )

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def is_discarded(self) -> bool:
        return self.phase in (InvocationPhase.SUPERSEDED, InvocationPhase.STOPPED)

    def finish(self) -> None:
        """Wake waiters and close subscriber streams. Idempotent."""
        if self.finished.is_set():
            return
        self.finished.set()
        for queue in self.subscribers:
            queue.put_nowait(None)

    def terminate(self, phase: InvocationPhase) -> None:
        """Move to a discarded phase and cancel the task (closes the connection)."""
        if not self.is_terminal:
            self.phase = phase
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.finish()


class ModelSession:
    """
    Uniform invocation surface over every configured backend.

    Usage:
        session = ModelSession(registry, Preferences.from_env())
        result = await session.invoke("", "Summarize: ...", "...")
        print(result.data)

    Guarantees:
    - Never raises from invoke()/submit() (errors are in result.error)
    - Stale responses never reach the observable output
    - No automatic retries
    """

    def __init__(
        self,
        registry: ModelRegistry,
        preferences: Optional[Preferences] = None,
        managed: Optional[ManagedService] = None,
        *,
        dispatcher: Optional[HttpDispatcher] = None,
        transport=None,
        on_update: Optional[Callable[[InvocationResult], None]] = None,
    ):
        """
        Args:
            registry: Source of Model records (read-only)
            preferences: Explicit configuration; defaults to Preferences()
            managed: Managed-service collaborator, or None if unavailable
            dispatcher: HTTP dispatcher; built from preferences if omitted
            transport: httpx transport forwarded to the default dispatcher
            on_update: Called with a snapshot on every observable change
        """
        self.preferences = preferences or Preferences()
        self.resolver = ModelResolver(registry, self.preferences)
        self.managed = managed
        self.dispatcher = dispatcher or HttpDispatcher(
            timeout=self.preferences.request_timeout_s, transport=transport
        )
        self.on_update = on_update

        self._data = ""
        self._error: Optional[str] = None
        self._loading = False
        self._data_tag = ""

        self._current_tag: Optional[str] = None
        self._live: Optional[StreamState] = None
        self._last_request: Optional[tuple] = None
        self._last_resolved: Optional[ResolvedModel] = None

    # ──────────────────────────────────────────────────────────
    # PUBLIC SURFACE
    # ──────────────────────────────────────────────────────────

    @property
    def live(self) -> Optional[StreamState]:
        return self._live

    def snapshot(self) -> InvocationResult:
        return InvocationResult(
            data=self._data,
            is_loading=self._loading,
            error=self._error,
            data_tag=self._data_tag,
            stop=self.stop,
            revalidate=self.revalidate,
        )

    async def invoke(
        self,
        base_prompt: str,
        prompt: str,
        input_text: str,
        temperature: str = "1.0",
        execute: bool = True,
        model_override: Optional[Model] = None,
    ) -> InvocationResult:
        """
        Submit and wait for the live invocation to settle.

        Returns when the invocation completes, fails, or is superseded or
        stopped. The returned snapshot always reflects the current inputs.
        """
        result = self.submit(base_prompt, prompt, input_text, temperature, execute, model_override)
        state = self._live
        if state is not None and state.tag == base_prompt + prompt + input_text:
            await state.finished.wait()
            return self.snapshot()
        return result

    def submit(
        self,
        base_prompt: str,
        prompt: str,
        input_text: str,
        temperature: str = "1.0",
        execute: bool = True,
        model_override: Optional[Model] = None,
    ) -> InvocationResult:
        """
        Resolve, validate and (if needed) dispatch without waiting.

        Must be called with a running event loop when a dispatch can occur.
        """
        tag = base_prompt + prompt + input_text
        self._last_request = (base_prompt, prompt, input_text, temperature, execute, model_override)
        self._current_tag = tag
        self._supersede_stale(tag)

        try:
            if not base_prompt and not prompt:
                raise ConfigurationError(EMPTY_PROMPT_ERROR)

            resolved = self.resolver.resolve(temperature, model_override)
            self._last_resolved = resolved
            backend = resolved.backend

            if isinstance(backend, PendingBackend):
                self._set(data="", loading=True, error=None, data_tag=tag)
                return self.snapshot()

            if isinstance(backend, InvalidBackend):
                raise ConfigurationError(INVALID_ENDPOINT_ERROR)

            if isinstance(backend, BuiltInBackend):
                return self._submit_managed(tag, resolved, backend, prompt, execute)

            return self._submit_http(tag, resolved, backend, base_prompt, prompt, input_text, execute)

        except (ConfigurationError, TemplateError) as e:
            logger.error(f"Invocation rejected: {e}", extra={"tag_length": len(tag)})
            self._discard_live(InvocationPhase.SUPERSEDED)
            self._set(data="", loading=False, error=str(e), data_tag="")
            return self.snapshot()

    def stop(self) -> None:
        """Close any live connection and discard its state."""
        state = self._live
        if state is None:
            return
        logger.info("Stopping live invocation", extra={"phase": state.phase.value})
        self._discard_live(InvocationPhase.STOPPED)
        if self._loading:
            self._set(loading=False)

    def revalidate(self) -> None:
        """Re-dispatch the last inputs, even if they already completed."""
        if self._last_request is None:
            return
        if self._last_resolved is not None and self._last_resolved.is_managed and self.managed:
            self.managed.revalidate()
        self.stop()
        self.submit(*self._last_request)

    async def updates(self) -> AsyncIterator[InvocationResult]:
        """
        Yield the current snapshot, then one per observable change of the
        live invocation, until it settles.
        """
        state = self._live
        if state is None or state.finished.is_set():
            yield self.snapshot()
            return

        queue: "asyncio.Queue[Optional[InvocationResult]]" = asyncio.Queue()
        state.subscribers.append(queue)
        try:
            yield self.snapshot()
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield item
        finally:
            if queue in state.subscribers:
                state.subscribers.remove(queue)

    # ──────────────────────────────────────────────────────────
    # DISPATCH
    # ──────────────────────────────────────────────────────────

    def _reusable(self, tag: str) -> bool:
        state = self._live
        return state is not None and state.tag == tag and not state.is_discarded

    def _hold(self) -> InvocationResult:
        """Nothing to dispatch yet. Clears loading left behind by a superseded request."""
        if self._live is None and self._loading:
            self._set(loading=False)
        return self.snapshot()

    def _start(self, tag: str, coro_factory) -> InvocationResult:
        # Raises before any state changes when called outside an event loop
        loop = asyncio.get_running_loop()
        state = StreamState(tag=tag, phase=InvocationPhase.DISPATCHING)
        # Ownership transfer: the old state was superseded in submit()
        self._live = state
        self._set(loading=True, error=None)
        state.task = loop.create_task(coro_factory(state))
        state.task.add_done_callback(self._on_task_done)
        return self.snapshot()

    def _submit_managed(
        self,
        tag: str,
        resolved: ResolvedModel,
        backend: BuiltInBackend,
        prompt: str,
        execute: bool,
    ) -> InvocationResult:
        if self.managed is None or not self.managed.is_available():
            # Managed path unusable here: explicit loading/unset state
            self._set(data="", loading=True, error=None, data_tag=tag)
            return self.snapshot()

        if not execute:
            return self._hold()

        if self._reusable(tag):
            return self.snapshot()

        rendered = self.preferences.prompt_prefix + prompt + self.preferences.prompt_suffix

        async def run(state: StreamState) -> None:
            await self._run_managed(state, resolved, backend, rendered, execute)

        return self._start(tag, run)

    def _submit_http(
        self,
        tag: str,
        resolved: ResolvedModel,
        backend: HttpBackend,
        base_prompt: str,
        prompt: str,
        input_text: str,
        execute: bool,
    ) -> InvocationResult:
        body = build_request_body(
            backend.input_schema,
            base_prompt,
            prompt,
            input_text,
            prompt_prefix=self.preferences.prompt_prefix,
            prompt_suffix=self.preferences.prompt_suffix,
            temperature=resolved.temperature if resolved.inject_temperature else None,
            model_name=resolved.model.name,
        )

        if not execute or not prompt:
            return self._hold()

        if self._reusable(tag):
            return self.snapshot()

        logger.info(
            f"Dispatching to {resolved.model.name or backend.url}",
            extra={"output_timing": backend.output_timing, "tag_length": len(tag)},
        )

        async def run(state: StreamState) -> None:
            await self._run_http(state, resolved, backend, body)

        return self._start(tag, run)

    async def _run_http(self, state: StreamState, resolved: ResolvedModel, backend: HttpBackend, body: dict) -> None:
        try:
            async with self.dispatcher.open(backend, body, resolved.headers) as response:
                if not self._is_current(state):
                    return

                if backend.output_timing == "sync":
                    state.phase = InvocationPhase.AWAITING_SYNC
                    raw = await response.aread()
                    state.text = decode_sync_output(raw, backend.output_key_path)
                    self._publish(state, state.text)
                    return

                state.phase = InvocationPhase.STREAMING
                self._set(data_tag=state.tag)
                accumulator = StreamAccumulator(backend.output_key_path)
                async for chunk in response.aiter_text():
                    if not self._is_current(state):
                        # Leaving the context closes the stale connection
                        return
                    for text in accumulator.feed(chunk):
                        state.text = text
                        self._publish(state, text)
                    if accumulator.done:
                        break

        except InvocationError as e:
            self._fail(state, str(e))

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.exception(f"Unexpected invocation failure: {type(e).__name__}")
            self._fail(state, f"Model request failed: {type(e).__name__}")

        finally:
            self._settle(state)

    async def _run_managed(
        self,
        state: StreamState,
        resolved: ResolvedModel,
        backend: BuiltInBackend,
        rendered_prompt: str,
        execute: bool,
    ) -> None:
        state.phase = InvocationPhase.AWAITING_SYNC
        try:
            completion = await self.managed.complete(
                rendered_prompt,
                creativity=resolved.temperature,
                execute=execute,
                model=backend.model_variant,
            )
            if self._is_current(state):
                state.text = completion.data
                self._set(
                    data=completion.data,
                    loading=completion.is_loading,
                    error=completion.error,
                    data_tag=state.tag,
                )

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.exception(f"Managed service failure: {type(e).__name__}")
            self._fail(state, f"Managed service failed: {type(e).__name__}")

        finally:
            if self._is_current(state) and not state.is_terminal:
                state.phase = InvocationPhase.COMPLETED
            state.finish()

    # ──────────────────────────────────────────────────────────
    # STATE GATING
    # ──────────────────────────────────────────────────────────

    def _supersede_stale(self, tag: str) -> None:
        state = self._live
        if state is not None and state.tag != tag:
            logger.info(
                "Superseding stale invocation",
                extra={"phase": state.phase.value},
            )
            self._discard_live(InvocationPhase.SUPERSEDED)

    def _discard_live(self, phase: InvocationPhase) -> None:
        state = self._live
        self._live = None
        if state is not None:
            state.terminate(phase)

    def _is_current(self, state: StreamState) -> bool:
        return (
            state is self._live
            and state.tag == self._current_tag
            and not state.is_discarded
        )

    def _publish(self, state: StreamState, text: str) -> None:
        if self._is_current(state):
            self._set(data=text, data_tag=state.tag)

    def _fail(self, state: StreamState, message: str) -> None:
        if not self._is_current(state):
            return
        state.phase = InvocationPhase.FAILED
        self._set(loading=False, error=message)

    def _settle(self, state: StreamState) -> None:
        if self._is_current(state):
            if state.phase != InvocationPhase.FAILED:
                state.phase = InvocationPhase.COMPLETED
                self._set(loading=False)
        elif not state.is_terminal:
            # Tag moved on while the response was in flight
            state.phase = InvocationPhase.SUPERSEDED
        state.finish()

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Invocation task ended with {type(exc).__name__}: {exc}")

    def _set(self, data=_UNSET, loading=_UNSET, error=_UNSET, data_tag=_UNSET) -> None:
        if data is not _UNSET:
            self._data = data
        if loading is not _UNSET:
            self._loading = loading
        if error is not _UNSET:
            self._error = error
        if data_tag is not _UNSET:
            self._data_tag = data_tag
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        state = self._live
        if state is not None:
            for queue in state.subscribers:
                queue.put_nowait(snapshot)
        if self.on_update is None:
            return
        try:
            self.on_update(snapshot)
        except Exception:
            logger.exception("on_update callback failed")
