# scheduler.py
"""
Upload scheduling for Board Image Tools.

Creates many image widgets through the host's asynchronous create call with
per-item retry and backoff, an adaptive limit on in-flight calls, and ETA
estimation for the progress display.  Concurrency here means the number of
pending remote calls on one event loop, not threads.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .config import ConcurrencySettings, EtaSettings, RetrySettings
from .host import BoardItem, ImagePayload

logger = logging.getLogger("board_tools.scheduler")


class UploadError(RuntimeError):
    """A create call failed on every attempt."""


class TaskState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(eq=False)
class UploadTask:
    """One widget to create.  The payload is bound at construction."""

    index: int
    payload: ImagePayload
    state: TaskState = TaskState.PENDING
    retries: int = 0
    latency: float = 0.0
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def size(self) -> int:
        return self.payload.size


# ----------------------------------------------------------------------
# Retry
# ----------------------------------------------------------------------
async def create_with_retry(
    create: Callable[[ImagePayload], Awaitable[Any]],
    payload: ImagePayload,
    settings: Optional[RetrySettings] = None,
    *,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> Any:
    """Call ``create(payload)`` until it succeeds or attempts run out.

    Attempt ``n`` failing waits ``base_delay * 2**(n-1)`` plus up to
    ``jitter`` seconds before the next one.  The last error is raised as the
    cause of an :class:`UploadError`.
    """
    settings = settings or RetrySettings()
    attempts = settings.retries + 1
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await create(payload)
        except Exception as exc:
            last_error = exc
            if attempt == attempts:
                break
            delay = settings.base_delay * 2 ** (attempt - 1) + rng() * settings.jitter
            logger.warning(
                "Create %r failed (attempt %d/%d), retrying in %.2fs: %s",
                payload.title, attempt, attempts, delay, exc,
            )
            if on_retry is not None:
                on_retry(attempt, exc)
            await sleep(delay)
    raise UploadError(
        f"Could not create {payload.title or 'image'} after {attempts} attempts: {last_error}"
    ) from last_error


# ----------------------------------------------------------------------
# Adaptive concurrency
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BatchStats:
    concurrency: int
    size: int
    elapsed: float
    bytes: int
    retries: int
    failures: int
    mean_latency: float

    @property
    def bytes_per_sec(self) -> float:
        return self.bytes / self.elapsed

    @property
    def items_per_sec(self) -> float:
        return self.size / self.elapsed

    @property
    def retries_per_item(self) -> float:
        """Retries plus final failures, per item."""
        if not self.size:
            return 0.0
        return (self.retries + self.failures) / self.size


@dataclass(slots=True)
class _Probe:
    from_level: int
    baseline: float
    remaining: int
    samples: List[float] = field(default_factory=list)


class AdaptiveConcurrencyRunner:
    """Run tasks in small batches and tune the in-flight limit between them.

    After every batch the throughput at the current level is folded into a
    per-level EWMA.  An unstable batch (many retries or slow items) lowers
    the limit by one, caps the ceiling there and starts a cooldown.  A
    stable batch outside cooldown probes one level higher for a few
    batches.  The probe batches' mean throughput is compared with the mean
    of the same number of most recent batches at the previous level; the
    probe is kept only if it beats them by the configured relative gain,
    otherwise the limit reverts and the ceiling is capped at the previous
    level.
    """

    def __init__(
        self,
        settings: Optional[ConcurrencySettings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_batch: Optional[Callable[[BatchStats], None]] = None,
    ) -> None:
        self.settings = settings or ConcurrencySettings()
        self.minimum = max(1, self.settings.minimum)
        self.maximum = max(self.minimum, self.settings.maximum)
        self.concurrency = min(self.maximum, max(self.minimum, self.settings.initial))
        self.ceiling = self.maximum
        self.clock = clock
        self.on_batch = on_batch
        self.level_throughput: Dict[int, float] = {}
        self.level_samples: Dict[int, List[float]] = {}
        self.ewma_throughput: Optional[float] = None
        self.history: List[BatchStats] = []
        self._cooldown = 0
        self._probe: Optional[_Probe] = None

    @property
    def batch_size(self) -> int:
        return max(self.settings.min_batch_size, 2 * self.concurrency)

    async def run(
        self, tasks: Sequence[UploadTask], worker: Callable[[UploadTask], Awaitable[Any]]
    ) -> List[UploadTask]:
        """Process every task; failures are recorded on the task, not raised."""
        tasks = list(tasks)
        position = 0
        while position < len(tasks):
            batch = tasks[position:position + self.batch_size]
            position += len(batch)
            stats = await self._run_batch(batch, worker)
            self.history.append(stats)
            self._adjust(stats)
            if self.on_batch is not None:
                self.on_batch(stats)
        return tasks

    async def _run_batch(
        self, batch: Sequence[UploadTask], worker: Callable[[UploadTask], Awaitable[Any]]
    ) -> BatchStats:
        limit = asyncio.Semaphore(self.concurrency)
        retries_before = sum(task.retries for task in batch)

        async def _one(task: UploadTask) -> None:
            async with limit:
                task.state = TaskState.IN_FLIGHT
                started = self.clock()
                try:
                    task.result = await worker(task)
                    task.state = TaskState.SUCCEEDED
                except Exception as exc:
                    task.error = exc
                    task.state = TaskState.FAILED
                    logger.error("Upload task %d failed: %s", task.index, exc)
                finally:
                    task.latency = self.clock() - started

        started = self.clock()
        # The semaphore wakes waiters in FIFO order, so tasks start by index.
        await asyncio.gather(*(_one(task) for task in batch))
        elapsed = max(self.clock() - started, 1e-6)

        return BatchStats(
            concurrency=self.concurrency,
            size=len(batch),
            elapsed=elapsed,
            bytes=sum(task.size for task in batch if task.state is TaskState.SUCCEEDED),
            retries=sum(task.retries for task in batch) - retries_before,
            failures=sum(1 for task in batch if task.state is TaskState.FAILED),
            mean_latency=sum(task.latency for task in batch) / len(batch),
        )

    def _fold(self, previous: Optional[float], sample: float) -> float:
        if previous is None:
            return sample
        alpha = self.settings.ewma_alpha
        return alpha * sample + (1 - alpha) * previous

    def _adjust(self, stats: BatchStats) -> None:
        s = self.settings
        throughput = stats.bytes_per_sec if stats.bytes else stats.items_per_sec
        level = stats.concurrency
        self.level_throughput[level] = self._fold(self.level_throughput.get(level), throughput)
        recent = self.level_samples.setdefault(level, [])
        recent.append(throughput)
        del recent[:-max(1, s.probe_batches)]
        self.ewma_throughput = self._fold(self.ewma_throughput, throughput)

        if self._cooldown > 0:
            self._cooldown -= 1

        retry_ratio = stats.retries_per_item
        if retry_ratio > s.unstable_retry_ratio or stats.mean_latency > s.unstable_latency:
            lowered = max(self.minimum, self.concurrency - 1)
            if lowered != self.concurrency:
                logger.info(
                    "Unstable batch (retries/item %.2f, latency %.1fs): concurrency %d -> %d",
                    retry_ratio, stats.mean_latency, self.concurrency, lowered,
                )
            self.concurrency = lowered
            self.ceiling = max(self.minimum, min(self.ceiling, lowered))
            self._cooldown = s.cooldown_batches
            self._probe = None
            return

        if self._probe is not None:
            self._probe.samples.append(throughput)
            self._probe.remaining -= 1
            if self._probe.remaining > 0:
                return
            probe, self._probe = self._probe, None
            probed = sum(probe.samples) / len(probe.samples)
            if probe.baseline > 0 and probed >= probe.baseline * (1 + s.min_probe_gain):
                logger.info(
                    "Keeping concurrency %d (%.0f vs %.0f per second)",
                    self.concurrency, probed, probe.baseline,
                )
            else:
                logger.info(
                    "Probe to %d gained too little (%.0f vs %.0f); capping at %d",
                    self.concurrency, probed, probe.baseline, probe.from_level,
                )
                self.concurrency = probe.from_level
                self.ceiling = probe.from_level
            return

        stable = (
            retry_ratio < s.stable_retry_ratio
            and stats.mean_latency < s.stable_latency
            and self._cooldown == 0
        )
        if stable and self.concurrency < self.ceiling:
            baseline = self.level_samples[self.concurrency]
            self._probe = _Probe(
                from_level=self.concurrency,
                baseline=sum(baseline) / len(baseline),
                remaining=max(1, s.probe_batches),
            )
            self.concurrency += 1
            logger.debug("Probing concurrency %d", self.concurrency)


# ----------------------------------------------------------------------
# Progress and ETA
# ----------------------------------------------------------------------
class EtaEstimator:
    """Remaining-time estimate from smoothed item and byte rates.

    Rates are sampled at most once per update interval and only when
    progress was made.  The larger of the item-based and byte-based
    estimates is reported.
    """

    def __init__(self, settings: Optional[EtaSettings] = None) -> None:
        self.settings = settings or EtaSettings()
        self.item_rate: Optional[float] = None  # items per ms
        self.byte_rate: Optional[float] = None  # bytes per ms
        self._last_ms = 0.0
        self._last_items = 0
        self._last_bytes = 0

    def _fold(self, previous: Optional[float], sample: float) -> float:
        if previous is None:
            return sample
        return self.settings.alpha * sample + (1 - self.settings.alpha) * previous

    def update(self, completed: int, total: int, bytes_done: int, elapsed_ms: float) -> Optional[float]:
        """Return the estimated milliseconds left, or ``None`` while unsure."""
        if total > 0 and completed >= total:
            return 0.0

        dt = elapsed_ms - self._last_ms
        if dt >= self.settings.update_interval_ms and completed > self._last_items:
            self.item_rate = self._fold(self.item_rate, (completed - self._last_items) / dt)
            self.byte_rate = self._fold(self.byte_rate, (bytes_done - self._last_bytes) / dt)
            self._last_ms = elapsed_ms
            self._last_items = completed
            self._last_bytes = bytes_done

        if completed < self.settings.min_samples or not self.item_rate:
            return None

        remaining = total - completed
        eta_items = remaining / self.item_rate
        if not self.byte_rate:
            return eta_items
        avg_bytes = bytes_done / completed
        eta_bytes = remaining * avg_bytes / self.byte_rate
        return max(eta_items, eta_bytes)


def format_eta(eta_ms: Optional[float]) -> str:
    if eta_ms is None:
        return "estimating…"
    seconds = int(round(eta_ms / 1000))
    if seconds < 60:
        return f"~{seconds}s left"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"~{minutes}m {seconds:02d}s left"
    hours, minutes = divmod(minutes, 60)
    return f"~{hours}h {minutes:02d}m left"


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    completed: int
    total: int
    text: str
    eta_ms: Optional[float] = None

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return int(self.completed * 100 / self.total)


ProgressSink = Callable[[ProgressUpdate], None]


class ProgressThrottle:
    """Forward at most one update per interval to ``sink``.

    Updates arriving too early are held; the newest held update is sent by
    the next accepted call or by :meth:`flush`.
    """

    def __init__(
        self,
        sink: ProgressSink,
        interval: float = 0.2,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self.interval = interval
        self.clock = clock
        self._last: Optional[float] = None
        self._pending: Optional[ProgressUpdate] = None

    def __call__(self, update: ProgressUpdate) -> None:
        now = self.clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            self._pending = None
            self.sink(update)
        else:
            self._pending = update

    def flush(self) -> None:
        if self._pending is not None:
            update, self._pending = self._pending, None
            self._last = self.clock()
            self.sink(update)


# ----------------------------------------------------------------------
# Upload of payloads to a board
# ----------------------------------------------------------------------
@dataclass
class UploadReport:
    created: List[BoardItem] = field(default_factory=list)
    failed: List[UploadTask] = field(default_factory=list)
    final_concurrency: int = 0
    elapsed: float = 0.0


class UploadScheduler:
    """Create one widget per payload with retry, adaptive concurrency and ETA."""

    def __init__(
        self,
        create: Callable[[ImagePayload], Awaitable[BoardItem]],
        *,
        retry: Optional[RetrySettings] = None,
        concurrency: Optional[ConcurrencySettings] = None,
        eta: Optional[EtaSettings] = None,
        metadata_namespace: Optional[str] = None,
        progress: Optional[ProgressSink] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.create = create
        self.retry = retry or RetrySettings()
        self.concurrency = concurrency or ConcurrencySettings()
        self.eta_settings = eta or EtaSettings()
        self.metadata_namespace = metadata_namespace
        self.clock = clock
        self.sleep = sleep
        self.progress = (
            ProgressThrottle(progress, self.eta_settings.throttle_secs, clock=clock)
            if progress is not None
            else None
        )

    async def _create(self, task: UploadTask) -> BoardItem:
        def _count_retry(_attempt: int, _exc: BaseException) -> None:
            task.retries += 1

        item = await create_with_retry(
            self.create, task.payload, self.retry, on_retry=_count_retry, sleep=self.sleep
        )
        if self.metadata_namespace and task.payload.metadata:
            try:
                await item.set_metadata(self.metadata_namespace, task.payload.metadata)
            except Exception as exc:
                logger.warning("Could not attach metadata to %r: %s", task.payload.title, exc)
        return item

    async def run(self, payloads: Sequence[ImagePayload]) -> UploadReport:
        tasks = [UploadTask(index, payload) for index, payload in enumerate(payloads)]
        total = len(tasks)
        estimator = EtaEstimator(self.eta_settings)
        started = self.clock()
        done = {"items": 0, "bytes": 0}

        async def worker(task: UploadTask) -> BoardItem:
            succeeded = False
            try:
                item = await self._create(task)
                succeeded = True
                return item
            finally:
                done["items"] += 1
                if succeeded:
                    done["bytes"] += task.size
                self._report(estimator, done["items"], total, done["bytes"], started)

        runner = AdaptiveConcurrencyRunner(self.concurrency, clock=self.clock)
        await runner.run(tasks, worker)
        if self.progress is not None:
            self.progress.flush()

        report = UploadReport(
            created=[t.result for t in tasks if t.state is TaskState.SUCCEEDED],
            failed=[t for t in tasks if t.state is TaskState.FAILED],
            final_concurrency=runner.concurrency,
            elapsed=self.clock() - started,
        )
        logger.info(
            "Uploaded %d/%d images in %.1fs (final concurrency %d)",
            len(report.created), total, report.elapsed, report.final_concurrency,
        )
        return report

    def _report(
        self, estimator: EtaEstimator, completed: int, total: int, bytes_done: int, started: float
    ) -> None:
        if self.progress is None:
            return
        eta_ms = estimator.update(completed, total, bytes_done, (self.clock() - started) * 1000)
        text = f"Uploading {completed} / {total}… {format_eta(eta_ms)}"
        self.progress(ProgressUpdate(completed, total, text, eta_ms))


__all__ = [
    "AdaptiveConcurrencyRunner",
    "BatchStats",
    "EtaEstimator",
    "ProgressThrottle",
    "ProgressUpdate",
    "TaskState",
    "UploadError",
    "UploadReport",
    "UploadScheduler",
    "UploadTask",
    "create_with_retry",
    "format_eta",
]
