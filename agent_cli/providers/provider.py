"""CLI provider: the execute contract shared by every backing CLI.

A CLIProvider pairs one CLIBackend (argument building, normalization) with
the machinery every CLI needs:

- Lazy, cached CLI location (LocationState), invalidated when a spawn finds
  the executable gone.
- Spawn plans for the resolved strategy (spawn.py).
- Separate stdout/stderr pipes. Stdout is framed and normalized into a
  bounded queue; stderr is drained into a bounded tail for error mapping.
- Exactly one terminal message per execution: a completion on exit code 0,
  otherwise one typed error.

Example:
    provider = CLIProvider(ClaudeCLIBackend())
    async with provider.execute(Query(prompt="Summarize README.md")) as run:
        async for message in run:
            if message.kind is MessageKind.TEXT_DELTA:
                print(message.text, end="")
"""

import asyncio
import logging
import os
import signal
import subprocess
import threading
from typing import List, Optional

from ..trace import provider_trace
from .base import CLIBackend, ProviderDescriptor, ProviderSettings
from .env import resolve_platform
from .errors import ErrorKind, ErrorMapper, InvalidQueryError, TypedError
from .locator import CLILocator, LocationState, ResolutionStatus
from .normalizer import EventNormalizer
from .spawn import (
    Platform,
    ShellSettings,
    SpawnPlan,
    build_spawn_plan,
    resolve_spawn_strategy,
)
from .stream import read_records
from .types import CancelToken, CanonicalMessage, MessageKind, Query

logger = logging.getLogger(__name__)

_STOP_CANCELLED = "cancelled"
_STOP_TIMEOUT = "timeout"


class CLIProvider:
    """One provider bound to one backing CLI.

    Attributes:
        name: Provider name (from the backend descriptor).
        descriptor: Static description of the backing CLI.
        location_state: Current cached location state.
    """

    def __init__(
        self,
        backend: CLIBackend,
        locator: Optional[CLILocator] = None,
        error_mapper: Optional[ErrorMapper] = None,
        platform: Optional[Platform] = None,
        settings: Optional[ProviderSettings] = None,
        shell: Optional[ShellSettings] = None,
    ):
        self._backend = backend
        self._settings = settings or ProviderSettings()
        self._shell = shell or ShellSettings()
        self._locator = locator or CLILocator(
            discovery_timeout=self._settings.discovery_timeout,
            wsl_executable=self._shell.wsl_executable,
        )
        self._error_mapper = error_mapper or ErrorMapper(
            stderr_excerpt_chars=self._settings.stderr_excerpt_chars
        )
        self._platform = platform or resolve_platform()
        self._state = LocationState.unresolved()
        self._location_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._backend.descriptor.name

    @property
    def descriptor(self) -> ProviderDescriptor:
        return self._backend.descriptor

    @property
    def backend(self) -> CLIBackend:
        return self._backend

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    @property
    def error_mapper(self) -> ErrorMapper:
        return self._error_mapper

    @property
    def location_state(self) -> LocationState:
        return self._state

    def serves_model(self, model_id: str) -> bool:
        """Check whether this provider claims a model id."""
        return self.descriptor.serves_model(model_id)

    def list_models(self) -> List[str]:
        """Commonly available model ids or aliases for this CLI."""
        return self._backend.list_models()

    # ==================== Location ====================

    def locate(self) -> LocationState:
        """Resolve the CLI location once and return the cached state.

        Blocking: may run a discovery subprocess. Concurrent callers wait
        for the first resolution instead of repeating it.

        Raises:
            UnsupportedPlatformError: If the provider declares no strategy
                for this platform.
        """
        with self._location_lock:
            if self._state.status == ResolutionStatus.UNRESOLVED:
                self._state = self._locator.locate(self.descriptor, self._platform)
            return self._state

    def invalidate_location(self) -> None:
        """Forget the cached location so the next execution searches again."""
        with self._location_lock:
            if self._state.status != ResolutionStatus.UNRESOLVED:
                logger.info(f"[{self.name}] Invalidating cached CLI location")
            self._state = LocationState.unresolved()

    def is_available(self) -> bool:
        """Check whether the CLI can be located (resolves if needed)."""
        return self.locate().is_resolved

    async def _resolve_location(self) -> LocationState:
        state = self._state
        if state.status != ResolutionStatus.UNRESOLVED:
            return state
        return await asyncio.to_thread(self.locate)

    def check_version(self, timeout: Optional[float] = None) -> Optional[str]:
        """Run the CLI with --version and return the first output line.

        Returns:
            The version line, or None if the CLI is unavailable, fails, or
            does not answer within the timeout.
        """
        state = self.locate()
        if not state.is_resolved:
            return None
        plan = build_spawn_plan(
            state.location,
            ["--version"],
            env=self._backend.build_env(dict(os.environ)),
            shell=self._shell,
        )
        timeout = timeout if timeout is not None else self._settings.discovery_timeout
        try:
            result = subprocess.run(
                plan.shell_command if plan.shell_command is not None else plan.argv,
                shell=plan.shell_command is not None,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                stdin=subprocess.DEVNULL,
                env=plan.env,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"[{self.name}] --version did not answer within {timeout:g}s")
            return None
        except OSError as e:
            logger.warning(f"[{self.name}] --version failed to start: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"[{self.name}] --version exited with code {result.returncode}")
            return None
        for line in (result.stdout or result.stderr or "").splitlines():
            if line.strip():
                return line.strip()
        return None

    # ==================== Execution ====================

    def execute(
        self,
        query: Query,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ) -> "Execution":
        """Start an execution of a query.

        Nothing runs until the returned Execution is first iterated. The
        query is copied, so later changes by the caller have no effect.

        Args:
            query: The query to run.
            cancel_token: Token that cancels the execution from any thread.
            timeout: Seconds before the execution ends with a TIMEOUT error.
                Overrides query.timeout and the provider settings.

        Raises:
            UnsupportedPlatformError: If the provider declares no strategy
                for this platform.
        """
        resolve_spawn_strategy(self._platform, self.descriptor.spawn_strategies, self.name)

        if timeout is None:
            timeout = query.timeout
        if timeout is None:
            timeout = self._settings.execution_timeout
        return Execution(
            provider=self,
            query=query.copy(),
            cancel_token=cancel_token,
            timeout=timeout if timeout is not None and timeout > 0 else None,
        )

    def __repr__(self) -> str:
        return f"CLIProvider(name={self.name!r}, state={self._state.status.value})"


class Execution:
    """A running (or not yet started) execution of one query.

    Async iterator of CanonicalMessage and async context manager. The
    subprocess starts on the first pull. The last message is always
    terminal (COMPLETION or ERROR); after it, iteration stops.

    Cancellation paths:
        - cancel() from the event loop thread
        - CancelToken.cancel() from any thread
        - a deadline (timeout)
        - aclose() / leaving the ``async with`` block, which stops without
          delivering a terminal message

    A cancel or deadline terminates the CLI right away, whether or not the
    consumer is pulling. Cancellation wins over messages already queued:
    they are discarded and the next pull returns the CANCELLED (or TIMEOUT)
    error.
    """

    def __init__(
        self,
        provider: CLIProvider,
        query: Query,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ):
        self._provider = provider
        self._query = query
        self._token = cancel_token
        self._timeout = timeout
        self._normalizer: EventNormalizer = provider.backend.create_normalizer()
        self._queue: Optional[asyncio.Queue] = None
        self._stop: Optional[asyncio.Event] = None
        self._stop_reason: Optional[str] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._task_cancelled = False
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._finished = False
        self._text_parts: List[str] = []
        self._stderr_tail = ""
        self._records = 0
        self._violations = 0
        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def query(self) -> Query:
        return self._query

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def result_text(self) -> str:
        """Concatenation of the text deltas delivered so far."""
        return "".join(self._text_parts)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    # ==================== Async protocols ====================

    def __aiter__(self) -> "Execution":
        return self

    async def __aenter__(self) -> "Execution":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def __anext__(self) -> CanonicalMessage:
        if self._finished:
            raise StopAsyncIteration

        if self._stop is None:
            if self._token is not None and self._token.is_cancelled:
                self._stop_reason = _STOP_CANCELLED
            self._start()

        if self._token is not None and self._token.is_cancelled:
            self._request_stop(_STOP_CANCELLED)
        if self._stop.is_set():
            return await self._finish_stopped()

        getter = asyncio.ensure_future(self._queue.get())
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            getter.cancel()
            stopper.cancel()
            await self._shutdown()
            self._finished = True
            raise
        finally:
            if not stopper.done():
                stopper.cancel()

        if self._stop.is_set():
            getter.cancel()
            return await self._finish_stopped()

        message = getter.result()
        if message.kind is MessageKind.TEXT_DELTA and message.text:
            self._text_parts.append(message.text)
        if message.is_terminal:
            self._finished = True
            await self._shutdown()
        return message

    def cancel(self) -> None:
        """Cancel the execution. Call from the event loop thread.

        The next pull (or the pending one) returns a CANCELLED error. Use a
        CancelToken to cancel from another thread.
        """
        if self._finished:
            return
        if self._stop is None:
            # Not started: the first pull returns CANCELLED without spawning.
            self._stop_reason = _STOP_CANCELLED
            return
        self._request_stop(_STOP_CANCELLED)

    async def aclose(self) -> None:
        """Stop the execution and release the subprocess.

        No terminal message is delivered; iteration simply ends.
        """
        if self._finished:
            return
        self._finished = True
        await self._shutdown()

    # ==================== Lifecycle ====================

    def _start(self) -> None:
        settings = self._provider.settings
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=settings.queue_size)
        self._stop = asyncio.Event()
        if self._stop_reason is not None:
            self._stop.set()
            return

        if self._token is not None:
            self._token.on_cancel(self._on_token_cancelled)
        if self._timeout is not None:
            self._deadline = self._loop.call_later(
                self._timeout, self._request_stop, _STOP_TIMEOUT
            )
        self._task = self._loop.create_task(self._run())
        logger.debug(f"[{self._provider.name}] Execution started (timeout={self._timeout})")

    def _on_token_cancelled(self) -> None:
        # Runs on whichever thread called CancelToken.cancel().
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._request_stop, _STOP_CANCELLED)

    def _request_stop(self, reason: str) -> None:
        if self._stop is None or self._stop.is_set() or self._finished:
            return
        self._stop_reason = reason
        self._stop.set()
        logger.debug(f"[{self._provider.name}] Execution stop requested ({reason})")
        # Stop the CLI now; the terminal message waits for the next pull.
        self._cancel_task()

    def _cancel_task(self) -> None:
        # Cancel at most once so a second cancel cannot interrupt termination.
        task = self._task
        if task is not None and not task.done() and not self._task_cancelled:
            self._task_cancelled = True
            task.cancel()

    async def _finish_stopped(self) -> CanonicalMessage:
        self._finished = True
        await self._shutdown()
        if self._stop_reason == _STOP_TIMEOUT:
            error = ErrorMapper.timeout(self._timeout or 0)
            logger.warning(f"[{self._provider.name}] {error.message}")
        else:
            error = ErrorMapper.cancelled()
            logger.info(f"[{self._provider.name}] Execution cancelled")
        return self._normalizer.error(error)

    async def _shutdown(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        if self._token is not None:
            self._token.remove_callback(self._on_token_cancelled)
        self._cancel_task()
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # ==================== Producer ====================

    async def _put(self, message: CanonicalMessage) -> None:
        # Suspends while the queue is full, which stops reads from stdout.
        await self._queue.put(message)

    async def _fail(self, error: TypedError) -> None:
        await self._put(self._normalizer.error(error))

    async def _run(self) -> None:
        try:
            await self._produce()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"[{self._provider.name}] Unexpected error during execution")
            provider_trace(self._provider.name, f"execution error: {e}", include_traceback=True)
            await self._fail(ErrorMapper.execution_failed(f"Unexpected error: {e}"))

    async def _produce(self) -> None:
        provider = self._provider
        backend = provider.backend
        settings = provider.settings
        name = provider.name

        # (a) locate
        state = await provider._resolve_location()
        if not state.is_resolved:
            await self._fail(ErrorMapper.unavailable(name, state.reason))
            return

        # (b) arguments
        try:
            args = backend.build_args(self._query, state.location)
        except InvalidQueryError as e:
            logger.info(f"[{name}] Rejected query: {e}")
            await self._fail(ErrorMapper.invalid_query(str(e)))
            return

        # (c) spawn plan
        try:
            plan = build_spawn_plan(
                state.location,
                args,
                cwd=self._query.cwd,
                env=backend.build_env(dict(os.environ)),
                shell=provider._shell,
            )
        except InvalidQueryError as e:
            logger.info(f"[{name}] Rejected query: {e}")
            await self._fail(ErrorMapper.invalid_query(str(e)))
            return
        logger.debug(
            f"[{name}] Spawning ({plan.strategy.value}): "
            f"{' '.join(plan.argv[:4])}... cwd={plan.cwd}"
        )
        provider_trace(name, f"spawn: strategy={plan.strategy.value} argv={plan.argv}")

        # (d) start
        try:
            process = await self._spawn(plan)
        except FileNotFoundError as e:
            provider.invalidate_location()
            await self._fail(ErrorMapper.unavailable(name, str(e)))
            return
        except OSError as e:
            await self._fail(
                ErrorMapper.execution_failed(f"Failed to start {plan.program}: {e}")
            )
            return
        self._process = process

        # (e) stream
        stderr_task = asyncio.ensure_future(self._drain_stderr(process.stderr))
        records = read_records(
            process.stdout,
            chunk_size=settings.read_chunk_size,
            max_line_bytes=settings.max_line_bytes,
            on_violation=self._on_violation,
            on_line=self._trace_line,
        )
        try:
            async for record in records:
                self._records += 1
                for message in self._normalizer.normalize(record):
                    await self._put(message)
            exit_code = await process.wait()
            await stderr_task
        finally:
            await records.aclose()
            if process.returncode is None:
                await self._terminate(process)
            if not stderr_task.done():
                stderr_task.cancel()

        # (f) terminal message
        logger.debug(f"[{name}] CLI exited with code {exit_code}")
        if exit_code == 0:
            if self._records == 0 and self._violations > 0:
                await self._fail(ErrorMapper.protocol_violation(
                    f"{self._violations} undecodable line(s) and no valid records"
                ))
                return
            await self._put(self._normalizer.completion({
                "exit_code": 0,
                "protocol_violations": self._violations,
            }))
            return

        error = provider.error_mapper.map(self._error_text(), exit_code)
        if error.kind is ErrorKind.UNAVAILABLE:
            provider.invalidate_location()
        logger.info(f"[{name}] Execution failed: {error.kind.value} (exit code {exit_code})")
        await self._put(self._normalizer.error(error))

    async def _spawn(self, plan: SpawnPlan) -> asyncio.subprocess.Process:
        kwargs = dict(
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=plan.cwd,
            env=plan.env,
            start_new_session=(os.name == "posix"),
        )
        if plan.shell_command is not None:
            # Batch scripts: the command line is already escaped for cmd.exe.
            return await asyncio.create_subprocess_shell(plan.shell_command, **kwargs)
        return await asyncio.create_subprocess_exec(*plan.argv, **kwargs)

    def _error_text(self) -> str:
        parts = [self._stderr_tail.strip()]
        parts.extend(d.strip() for d in self._normalizer.diagnostics)
        return "\n".join(p for p in parts if p)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        limit = self._provider.settings.stderr_tail_chars
        while True:
            chunk = await stream.read(self._provider.settings.read_chunk_size)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace")
            provider_trace(self._provider.name, f"stderr: {text[:500]!r}")
            tail = self._stderr_tail + text
            self._stderr_tail = tail[-limit:] if len(tail) > limit else tail

    def _on_violation(self, reason: str, line: bytes) -> None:
        self._violations += 1
        provider_trace(self._provider.name, f"protocol violation: {reason}: {line[:200]!r}")

    def _trace_line(self, line: bytes) -> None:
        provider_trace(self._provider.name, f"stdout: {line[:500]!r}")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Stop the CLI: SIGTERM, then SIGKILL after the grace period."""
        grace = self._provider.settings.terminate_grace
        logger.debug(f"[{self._provider.name}] Terminating CLI process {process.pid}")
        try:
            _send_signal(process, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
            return
        except asyncio.TimeoutError:
            logger.warning(
                f"[{self._provider.name}] CLI process {process.pid} ignored SIGTERM "
                f"for {grace:g}s, killing"
            )
        try:
            _send_signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        except ProcessLookupError:
            return
        await process.wait()


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the CLI and, on POSIX, the rest of its process group."""
    if os.name == "posix":
        try:
            os.killpg(process.pid, sig)
            return
        except PermissionError:
            pass
    if sig == signal.SIGTERM:
        process.terminate()
    else:
        process.kill()
