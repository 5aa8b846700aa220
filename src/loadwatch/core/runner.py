"""Background thread runner that reports job progress into a LoadingStore.

The worker runs on a daemon thread and never touches the store. Its progress
messages and its outcome go through a queue that a repeating timer drains on
the store's own context, where they become `report()` calls:

    Started (0%) -> InProgress (done/total) ... -> Complete | Failed | Cancelled
"""

from __future__ import annotations

import queue
import threading
import traceback
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from loadwatch.core.categories import LoadingCategory
from loadwatch.core.config import DEFAULT_POLL_INTERVAL_S, LoadwatchConfig
from loadwatch.core.phases import LoadingPhases
from loadwatch.core.store import LoadingStore
from loadwatch.core.utils.logging import get_logger
from loadwatch.core.utils.progress import CancelledError, ProgressCallback, ProgressMessage

logger = get_logger(__name__)

TResult = TypeVar("TResult")


@dataclass(frozen=True)
class ProgressMsg:
    job_id: int
    msg: ProgressMessage


@dataclass(frozen=True)
class DoneMsg(Generic[TResult]):
    job_id: int
    result: TResult


@dataclass(frozen=True)
class CancelledMsg:
    job_id: int


@dataclass(frozen=True)
class ErrorMsg:
    job_id: int
    exc: BaseException
    tb: str


WorkerMsg = Union[ProgressMsg, DoneMsg[TResult], CancelledMsg, ErrorMsg]

WorkerFn = Callable[[threading.Event, ProgressCallback], TResult]
OnDone = Callable[[TResult], None]
# Repeating timer: (interval_s, callback) -> handle with cancel().
# NiceGUI: lambda interval, cb: ui.timer(interval, cb)
PollTimerFactory = Callable[[float, Callable[[], None]], object]


class ReportingJobRunner(Generic[TResult]):
    """Run one background job at a time and report it under a fixed id.

    Attributes:
        loading_id: Id the job is reported under.
        categories: Category mask reported with every update.
    """

    def __init__(
        self,
        store: LoadingStore,
        loading_id: str,
        *,
        categories: LoadingCategory = LoadingCategory.NONE,
        poll_timer_factory: PollTimerFactory,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self._store = store
        self.loading_id = loading_id
        self.categories = LoadingCategory(categories)
        self._poll_timer_factory = poll_timer_factory
        self._poll_interval_s = poll_interval_s

        self._lock = threading.Lock()
        self._next_job_id: int = 0
        self._active_job_id: int = 0
        self._cancel_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._q: "queue.Queue[WorkerMsg[TResult]]" = queue.Queue()
        self._on_done: Optional[OnDone[TResult]] = None
        self._timer = None

    @classmethod
    def from_config(
        cls,
        config: LoadwatchConfig,
        store: LoadingStore,
        loading_id: str,
        *,
        categories: LoadingCategory = LoadingCategory.NONE,
        poll_timer_factory: PollTimerFactory,
    ) -> "ReportingJobRunner[TResult]":
        """Build a runner that polls its queue every `config.data.poll_interval_s` seconds."""
        return cls(
            store,
            loading_id,
            categories=categories,
            poll_timer_factory=poll_timer_factory,
            poll_interval_s=config.data.poll_interval_s,
        )

    @property
    def active_job_id(self) -> int:
        with self._lock:
            return self._active_job_id

    def is_running(self) -> bool:
        t = self._thread
        return bool(t and t.is_alive())

    def cancel(self) -> None:
        with self._lock:
            ev = self._cancel_event
        if ev is not None:
            ev.set()

    def start(
        self,
        worker_fn: WorkerFn[TResult],
        *,
        message: str = "Starting...",
        on_done: Optional[OnDone[TResult]] = None,
        cancel_previous: bool = True,
    ) -> int:
        """Report Started and launch `worker_fn(cancel_event, progress_cb)` on a thread.

        Must be called on the store's context. Messages from an earlier job
        are dropped once a new job starts.

        Returns:
            The new job id.
        """
        with self._lock:
            self._next_job_id += 1
            job_id = self._next_job_id
            if cancel_previous and self._cancel_event is not None:
                self._cancel_event.set()
            self._active_job_id = job_id
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            self._on_done = on_done

        self._store.report(self.loading_id, LoadingPhases.STARTED, self.categories, 0.0, message)
        self._ensure_timer()

        t = threading.Thread(
            target=self._worker_entry,
            name=f"ReportingJobRunner-{self.loading_id}-{job_id}",
            daemon=True,
            args=(job_id, cancel_event, worker_fn),
        )
        self._thread = t
        t.start()
        return job_id

    def _ensure_timer(self) -> None:
        self._stop_timer()
        self._timer = self._poll_timer_factory(self._poll_interval_s, self.poll_once)

    def _worker_entry(
        self,
        job_id: int,
        cancel_event: threading.Event,
        worker_fn: WorkerFn[TResult],
    ) -> None:
        try:
            def emit(msg: ProgressMessage) -> None:
                self._q.put(ProgressMsg(job_id=job_id, msg=msg))

            result = worker_fn(cancel_event, emit)

            if cancel_event.is_set():
                self._q.put(CancelledMsg(job_id=job_id))
                return

            self._q.put(DoneMsg[TResult](job_id=job_id, result=result))

        except CancelledError:
            self._q.put(CancelledMsg(job_id=job_id))
        except BaseException as exc:
            tb = traceback.format_exc()
            self._q.put(ErrorMsg(job_id=job_id, exc=exc, tb=tb))

    def poll_once(self) -> None:
        """Drain queued worker messages into the store (store context only)."""
        max_per_tick = 200
        n = 0
        while n < max_per_tick:
            try:
                msg = self._q.get_nowait()
            except queue.Empty:
                break
            n += 1
            self._handle_msg(msg)

        if not self.is_running() and self._q.empty():
            self._stop_timer()

    def _handle_msg(self, msg: WorkerMsg[TResult]) -> None:
        with self._lock:
            latest_id = self._active_job_id
            on_done = self._on_done

        if getattr(msg, "job_id", None) != latest_id:
            return

        if isinstance(msg, ProgressMsg):
            self._store.report(
                self.loading_id,
                LoadingPhases.IN_PROGRESS,
                self.categories,
                msg.msg.fraction,
                msg.msg.detail,
            )
            return

        if isinstance(msg, DoneMsg):
            self._store.report(self.loading_id, LoadingPhases.COMPLETE, self.categories, 1.0, "Done")
            if on_done:
                try:
                    on_done(msg.result)
                except Exception:
                    logger.exception(f"Exception in on_done for {self.loading_id}")
            return

        if isinstance(msg, CancelledMsg):
            self._store.report(self.loading_id, LoadingPhases.CANCELLED, self.categories, 0.0, "Cancelled")
            return

        if isinstance(msg, ErrorMsg):
            logger.error(f"Job {self.loading_id} failed:\n{msg.tb}")
            self._store.report(
                self.loading_id, LoadingPhases.FAILED, self.categories, 1.0, f"Error: {msg.exc}"
            )
            return

    def _stop_timer(self) -> None:
        if self._timer is not None:
            try:
                self._timer.cancel()
            except Exception:
                logger.exception("Failed to cancel poll timer")
            self._timer = None
