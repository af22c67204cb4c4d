"""Fixed-size pool of Tesseract workers for concurrent section OCR.

The pool is an explicit value with an owned lifecycle::

    uninitialized -> initializing -> ready -> draining -> terminated

Sections are dispatched to ``workers[index % size]`` and recognized on a
thread pool; Tesseract runs out of process, so threads give real
parallelism. A batch is all-or-nothing: one failed section fails the batch.
"""

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait

from listing_ocr.errors import NotInitializedError, PoolStateError, RecognitionError
from listing_ocr.models import PoolState, ProgressEvent, RecognizedText, Section
from listing_ocr.utils.config import OCRConfig
from listing_ocr.utils.logger import get_logger

from .tesseract_engine import TesseractEngine

logger = get_logger(__name__)

OverallProgressCallback = Callable[[float], None]


class ProgressAggregator:
    """Combine per-section progress events into one overall figure.

    Keeps the latest progress of every section in the current batch and
    reports their mean. The reported value never decreases within a batch.

    Args:
        section_count: Number of sections in the batch.
    """

    def __init__(self, section_count: int) -> None:
        self.section_count = max(1, section_count)
        self._latest: dict[int, float] = {}
        self._reported = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._reported

    def update(self, event: ProgressEvent) -> float:
        """Record an event and return the overall progress in ``[0, 1]``."""
        with self._lock:
            previous = self._latest.get(event.section_index, 0.0)
            self._latest[event.section_index] = max(previous, event.progress)
            overall = min(1.0, sum(self._latest.values()) / self.section_count)
            self._reported = max(self._reported, overall)
            return self._reported


class RecognitionWorkerPool:
    """Owns a fixed set of independently loaded Tesseract engines.

    Use as a context manager to guarantee release on every exit path::

        with RecognitionWorkerPool(config) as pool:
            texts = pool.recognize_all(sections)

    Args:
        config: OCR tuning applied to every worker.
        progress_callback: Receives overall batch progress in ``[0, 1]``.
    """

    def __init__(
        self,
        config: OCRConfig,
        progress_callback: OverallProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.progress_callback = progress_callback
        self._state = PoolState.UNINITIALIZED
        self._state_changed = threading.Condition()
        self._workers: list[TesseractEngine] = []
        self._worker_locks: list[threading.Lock] = []
        self._executor: ThreadPoolExecutor | None = None
        self._aggregator: ProgressAggregator | None = None
        self._progress_lock = threading.Lock()

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def is_ready(self) -> bool:
        return self._state is PoolState.READY

    def __enter__(self) -> "RecognitionWorkerPool":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate_all()

    def initialize(self, size: int | None = None) -> None:
        """Load ``size`` engines and mark the pool ready.

        Args:
            size: Number of workers. Defaults to ``config.pool_size``.

        Raises:
            PoolStateError: If the pool is already ready or mid-transition.
            RecognitionError: If any engine fails to load; engines loaded so
                far are released and the pool returns to ``uninitialized``.
        """
        size = self.config.pool_size if size is None else size
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")

        with self._state_changed:
            if self._state not in (PoolState.UNINITIALIZED, PoolState.TERMINATED):
                raise PoolStateError(
                    f"Cannot initialize a pool that is {self._state.value}; "
                    "terminate it first",
                    self._state.value,
                )
            self._state = PoolState.INITIALIZING

        logger.info("Initializing recognition pool with %d workers", size)
        workers: list[TesseractEngine] = []
        try:
            for i in range(size):
                engine = TesseractEngine(
                    self.config, worker_index=i, progress_callback=self._on_progress
                )
                engine.load()
                workers.append(engine)
        except Exception:
            for engine in workers:
                engine.terminate()
            with self._state_changed:
                self._state = PoolState.UNINITIALIZED
                self._state_changed.notify_all()
            logger.error("Recognition pool failed to initialize")
            raise

        with self._state_changed:
            self._workers = workers
            self._worker_locks = [threading.Lock() for _ in workers]
            self._executor = ThreadPoolExecutor(
                max_workers=size, thread_name_prefix="ocr-worker"
            )
            self._state = PoolState.READY
            self._state_changed.notify_all()
        logger.info("Recognition pool ready")

    def terminate_all(self) -> None:
        """Release every engine.

        Safe to call at any time. A no-op on a pool that holds no engines.
        A call that overlaps an in-flight initialize or terminate waits for
        that transition to finish, then releases whatever it left loaded.
        """
        with self._state_changed:
            self._state_changed.wait_for(
                lambda: self._state
                not in (PoolState.INITIALIZING, PoolState.DRAINING)
            )
            if self._state is not PoolState.READY:
                return
            self._state = PoolState.DRAINING
            executor, self._executor = self._executor, None
            workers, self._workers = self._workers, []
            self._worker_locks = []

        try:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
            for engine in workers:
                engine.terminate()
        finally:
            with self._state_changed:
                self._state = PoolState.TERMINATED
                self._state_changed.notify_all()
        logger.info("Recognition pool terminated (%d workers released)", len(workers))

    def _require_ready(self) -> None:
        if self._state is not PoolState.READY:
            raise NotInitializedError(self._state.value)

    def _on_progress(self, event: ProgressEvent) -> None:
        aggregator = self._aggregator
        if aggregator is None:
            return
        # Callbacks are serialized so listeners observe non-decreasing values.
        with self._progress_lock:
            overall = aggregator.update(event)
            if self.progress_callback is not None:
                self.progress_callback(overall)

    def _run_on_worker(self, section: Section) -> RecognizedText:
        worker_index = section.worker_index(len(self._workers))
        with self._worker_locks[worker_index]:
            return self._workers[worker_index].recognize(section)

    def recognize(self, section: Section) -> RecognizedText:
        """Recognize one section on its assigned worker.

        Raises:
            NotInitializedError: If the pool is not ready.
            RecognitionError: If OCR of the section fails.
        """
        self._require_ready()
        self._aggregator = ProgressAggregator(1)
        return self._run_on_worker(section)

    def recognize_all(self, sections: Sequence[Section]) -> list[RecognizedText]:
        """Recognize sections concurrently and join all-or-nothing.

        Args:
            sections: Non-overlapping sections of one bitmap.

        Returns:
            Recognized text ordered by section index.

        Raises:
            NotInitializedError: If the pool is not ready.
            RecognitionError: If any section fails; pending sections are
                cancelled and no partial result is returned.
        """
        self._require_ready()
        executor = self._executor
        if executor is None:
            raise NotInitializedError(self._state.value)

        self._aggregator = ProgressAggregator(len(sections))
        futures: dict[Future, Section] = {
            executor.submit(self._run_on_worker, section): section
            for section in sections
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        failed = [f for f in done if f.exception() is not None]
        if failed:
            for future in pending:
                future.cancel()
            wait(pending)
            first = min(failed, key=lambda f: futures[f].index)
            exc = first.exception()
            section = futures[first]
            logger.error(
                "Recognition batch failed on section %d: %s", section.index, exc
            )
            if isinstance(exc, RecognitionError):
                raise exc
            raise RecognitionError(
                f"OCR failed on section {section.index}: {exc}", section.index
            ) from exc

        results = sorted((f.result() for f in done), key=lambda r: r.section_index)
        logger.info(
            "Recognized %d sections on %d workers", len(results), len(self._workers)
        )
        return results
