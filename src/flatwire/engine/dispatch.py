# src/flatwire/engine/dispatch.py
"""Dispatch coordinator: fans inbound messages out to flatten tasks.

Each inbound message spawns one task per registration of its route key.
A task takes a top-level copy of the message, flattens it against the
registration's path spec, post-processes every record and hands the
whole batch to the sink in a single write() call.

Concurrency model:
    - Default (max_workers=None): one daemon thread per task. Dispatch is
      unbounded fire-and-forget with no backpressure.
    - Bounded (max_workers=N): tasks run on a ThreadPoolExecutor with N
      workers; excess tasks queue in memory.

    on_message() never waits for a task and never reports task outcomes
    to its caller. Tasks share only read-only definitions; each owns its
    header accumulator and record batch.

Failure isolation:
    A SinkError (after optional retries) is logged and the batch is
    dropped. Any other exception inside a task is logged with its traceback
    and counted as a failure. Neither leaves the task's thread.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import structlog

from flatwire.contracts import Definitions, Registration, SinkError
from flatwire.engine.flattener import TreeFlattener
from flatwire.engine.postprocess import RecordPostProcessor
from flatwire.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager

if TYPE_CHECKING:
    from flatwire.core.config import FlatwireSettings
    from flatwire.plugins.sinks.base import DocumentSink

logger = structlog.get_logger(__name__)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, SinkError) and error.retryable


@dataclass
class DispatchStats:
    """Counters describing dispatch activity since startup."""

    messages_received: int = 0
    messages_unrouted: int = 0
    tasks_started: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    records_emitted: int = 0


class DispatchCoordinator:
    """Routes messages to registrations and runs flatten tasks concurrently.

    Example:
        coordinator = DispatchCoordinator(definitions, sink, max_workers=8)
        coordinator.on_message("interfaces", payload)  # returns immediately
        ...
        coordinator.shutdown()
    """

    def __init__(
        self,
        definitions: Definitions,
        sink: DocumentSink,
        *,
        max_workers: int | None = None,
        retry_config: RetryConfig | None = None,
        gate_on_unmatched: bool = True,
    ) -> None:
        """Initialize the coordinator.

        Args:
            definitions: Read-only route table and post-processing rules
            sink: Receives one write() per task
            max_workers: Bound on concurrently running tasks (None = unbounded)
            retry_config: Sink retry behavior (default: single attempt)
            gate_on_unmatched: Passed through to every flattener
        """
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1 or None, got {max_workers}")

        self._definitions = definitions
        self._sink = sink
        self._retry = RetryManager(retry_config or RetryConfig.no_retry())
        self._post_processor = RecordPostProcessor(definitions.filter_spec, definitions.enrich_spec)

        # Flatteners hold read-only configuration; built once per registration
        self._flatteners: dict[str, tuple[tuple[Registration, TreeFlattener], ...]] = {
            route_key: tuple(
                (
                    registration,
                    TreeFlattener(
                        registration.path_spec,
                        registration.mode,
                        self._post_processor,
                        gate_on_unmatched=gate_on_unmatched,
                    ),
                )
                for registration in registrations
            )
            for route_key, registrations in definitions.routes.items()
        }

        self._max_workers = max_workers
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="flatwire-dispatch") if max_workers is not None else None
        )

        self._stats = DispatchStats()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._in_flight = 0
        self._shutdown = False

    @classmethod
    def from_settings(
        cls,
        settings: FlatwireSettings,
        definitions: Definitions,
        sink: DocumentSink,
    ) -> DispatchCoordinator:
        """Build a coordinator from validated settings."""
        return cls(
            definitions,
            sink,
            max_workers=settings.concurrency.max_workers,
            retry_config=RetryConfig.from_settings(settings.retry),
            gate_on_unmatched=settings.flatten.gate_on_unmatched,
        )

    @property
    def definitions(self) -> Definitions:
        return self._definitions

    @property
    def max_workers(self) -> int | None:
        return self._max_workers

    @property
    def in_flight(self) -> int:
        """Tasks spawned but not yet finished."""
        with self._lock:
            return self._in_flight

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of dispatch counters."""
        with self._lock:
            stats = asdict(self._stats)
            stats["tasks_in_flight"] = self._in_flight
        stats["max_workers"] = self._max_workers
        return stats

    def on_message(self, route_key: str, tree: dict[str, Any]) -> int:
        """Fan a message out to every registration of its route.

        Returns without waiting for any task. Unknown route keys and routes
        without registrations are no-ops.

        Args:
            route_key: Route the message arrived on
            tree: Decoded telemetry message

        Returns:
            Number of tasks spawned. A registration whose task could not be
            started is logged and counted as failed, not raised.

        Raises:
            RuntimeError: If the coordinator has been shut down
        """
        targets = self._flatteners.get(route_key, ())
        with self._lock:
            if self._shutdown:
                raise RuntimeError("DispatchCoordinator has been shut down")
            self._stats.messages_received += 1
            if not targets:
                self._stats.messages_unrouted += 1

        if not targets:
            logger.debug("message_unrouted", route=route_key)
            return 0

        spawned = 0
        for registration, flattener in targets:
            if self._spawn(route_key, registration, flattener, tree):
                spawned += 1
        return spawned

    def _spawn(
        self,
        route_key: str,
        registration: Registration,
        flattener: TreeFlattener,
        tree: dict[str, Any],
    ) -> bool:
        with self._lock:
            self._in_flight += 1
            self._stats.tasks_started += 1

        args = (route_key, registration, flattener, tree)
        try:
            if self._executor is None:
                thread = threading.Thread(
                    target=self._run_task,
                    args=args,
                    name=f"flatwire-{route_key}-{registration.name}",
                    daemon=True,
                )
                thread.start()
            else:
                self._executor.submit(self._run_task, *args)
        except RuntimeError:
            # Thread could not start (interpreter shutdown, thread limit)
            logger.exception("dispatch_spawn_failed", route=route_key, registration=registration.name)
            self._finish(failed=True, records=0)
            return False
        return True

    def _run_task(
        self,
        route_key: str,
        registration: Registration,
        flattener: TreeFlattener,
        tree: dict[str, Any],
    ) -> None:
        """Flatten one message against one registration and emit the batch."""
        log = logger.bind(route=route_key, registration=registration.name, index=registration.index)
        failed = True
        records: list[dict[str, Any]] = []
        try:
            # Flattening only reads nested values, so a top-level copy isolates the task
            message = dict(tree)
            records = flattener.flatten(message)
            self._retry.execute_with_retry(
                lambda: self._sink.write(registration.index, records),
                is_retryable=_is_retryable,
                on_retry=lambda attempt, error: log.warning("sink_write_retry", attempt=attempt, error=str(error)),
            )
            failed = False
            log.debug("dispatch_task_completed", records=len(records))
        except MaxRetriesExceeded as e:
            log.error("sink_write_failed", records=len(records), attempts=e.attempts, error=str(e.last_error))
        except SinkError as e:
            log.error("sink_write_failed", records=len(records), attempts=1, error=str(e))
        except Exception:
            log.exception("dispatch_task_crashed")
        finally:
            self._finish(failed=failed, records=0 if failed else len(records))

    def _finish(self, *, failed: bool, records: int) -> None:
        with self._idle:
            self._in_flight -= 1
            if failed:
                self._stats.tasks_failed += 1
            else:
                self._stats.tasks_completed += 1
                self._stats.records_emitted += records
            if self._in_flight == 0:
                self._idle.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is in flight.

        Args:
            timeout: Maximum seconds to wait (None = forever)

        Returns:
            True if idle, False if the timeout expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> None:
        """Stop accepting messages.

        Args:
            wait: If True, wait for in-flight tasks to finish
            timeout: Maximum seconds to wait for in-flight tasks
        """
        with self._lock:
            self._shutdown = True
        if wait and not self.wait_idle(timeout):
            logger.warning("dispatch_shutdown_timeout", tasks_in_flight=self.in_flight)
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
