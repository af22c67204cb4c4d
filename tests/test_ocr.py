"""Tests for the Tesseract engine wrapper and the recognition worker pool."""

import threading
from unittest.mock import patch

import numpy as np
import pytest
from pytesseract import TesseractError, TesseractNotFoundError

from listing_ocr.errors import NotInitializedError, PoolStateError, RecognitionError
from listing_ocr.models import PoolState, ProgressEvent, RecognizedText, Section
from listing_ocr.ocr.tesseract_engine import TesseractEngine, build_tesseract_config
from listing_ocr.ocr.worker_pool import ProgressAggregator, RecognitionWorkerPool
from listing_ocr.utils.config import OCRConfig


def _make_section(index: int = 0) -> Section:
    return Section(
        index=index, top=index * 10, bitmap=np.full((10, 40), 255, dtype=np.uint8)
    )


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "SKU-100", "Widget", "", "12"],
        "conf": [-1, 95, 88, -1, 72],
    }


def _fake_engine_class(
    fail_section: int | None = None,
    fail_load: int | None = None,
    error: Exception | None = None,
    calls: list[tuple[int, int]] | None = None,
    terminated: list[int] | None = None,
    load_gate: tuple[threading.Event, threading.Event] | None = None,
    terminate_gate: tuple[threading.Event, threading.Event] | None = None,
) -> type:
    """Build a stand-in engine class recording how the pool drives it."""

    class FakeEngine:
        def __init__(self, config, worker_index=0, progress_callback=None) -> None:
            self.worker_index = worker_index
            self.progress_callback = progress_callback

        def load(self) -> None:
            if load_gate is not None:
                entered, release = load_gate
                entered.set()
                release.wait(timeout=5)
            if fail_load == self.worker_index:
                raise RecognitionError(f"worker {self.worker_index} failed")

        def terminate(self) -> None:
            if terminate_gate is not None:
                entered, release = terminate_gate
                entered.set()
                release.wait(timeout=5)
            if terminated is not None:
                terminated.append(self.worker_index)

        def recognize(self, section: Section) -> RecognizedText:
            if calls is not None:
                calls.append((section.index, self.worker_index))
            if section.index == fail_section:
                raise error or RecognitionError("boom", section.index)
            for progress in (0.0, 0.5, 1.0):
                if self.progress_callback is not None:
                    self.progress_callback(
                        ProgressEvent(self.worker_index, section.index, "ocr", progress)
                    )
            return RecognizedText(section.index, f"text {section.index}", 0.9, 2)

    return FakeEngine


class TestBuildTesseractConfig:
    """Tests for the Tesseract command-line configuration string."""

    def test_defaults(self) -> None:
        config_str = build_tesseract_config(OCRConfig())
        assert config_str.startswith("--oem 1 --psm 4")
        assert "tessedit_char_whitelist=" in config_str
        assert "preserve_interword_spaces=1" in config_str
        assert "load_system_dawg=0" in config_str
        assert "load_freq_dawg=0" in config_str

    def test_dictionary_and_modes(self) -> None:
        config = OCRConfig(
            engine_mode=3, page_segmentation_mode=6, dictionary_enabled=True
        )
        config_str = build_tesseract_config(config)
        assert "--oem 3 --psm 6" in config_str
        assert "load_system_dawg=1" in config_str


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_load(self, mock_tess) -> None:
        mock_tess.get_tesseract_version.return_value = "5.3.0"
        mock_tess.get_languages.return_value = ["eng", "osd"]
        engine = TesseractEngine(OCRConfig())
        engine.load()
        assert engine.loaded is True

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_load_sets_tesseract_cmd(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["eng"]
        TesseractEngine(OCRConfig(tesseract_cmd="/opt/tesseract")).load()
        assert mock_tess.pytesseract.tesseract_cmd == "/opt/tesseract"

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_load_missing_language(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["osd"]
        engine = TesseractEngine(OCRConfig(language="eng+deu"))
        with pytest.raises(RecognitionError, match="eng, deu"):
            engine.load()
        assert engine.loaded is False

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_load_without_tesseract(self, mock_tess) -> None:
        mock_tess.get_tesseract_version.side_effect = TesseractNotFoundError()
        with pytest.raises(RecognitionError, match="could not start"):
            TesseractEngine(OCRConfig(), worker_index=3).load()

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_recognize(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["eng"]
        mock_tess.image_to_string.return_value = "SKU-100  Widget  12"
        mock_tess.image_to_data.return_value = _mock_tesseract_data()
        events: list[ProgressEvent] = []

        engine = TesseractEngine(
            OCRConfig(), worker_index=1, progress_callback=events.append
        )
        engine.load()
        result = engine.recognize(_make_section(2))

        assert result.section_index == 2
        assert result.text == "SKU-100  Widget  12"
        assert result.word_count == 3
        assert result.confidence == pytest.approx((95 + 88 + 72) / 3 / 100)
        assert [e.progress for e in events] == [0.0, 0.5, 1.0]
        assert all(e.worker_index == 1 and e.section_index == 2 for e in events)

        _, kwargs = mock_tess.image_to_string.call_args
        assert kwargs["lang"] == "eng"
        assert kwargs["config"] == engine.tesseract_config

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_recognize_empty_output(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["eng"]
        mock_tess.image_to_string.return_value = ""
        mock_tess.image_to_data.return_value = {"text": [""], "conf": [-1]}
        engine = TesseractEngine(OCRConfig())
        engine.load()
        result = engine.recognize(_make_section())
        assert result.confidence == 0.0
        assert result.word_count == 0

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_recognize_failure(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["eng"]
        mock_tess.image_to_string.side_effect = TesseractError(1, "bad image")
        engine = TesseractEngine(OCRConfig())
        engine.load()
        with pytest.raises(RecognitionError) as exc_info:
            engine.recognize(_make_section(5))
        assert exc_info.value.section_index == 5

    def test_recognize_before_load(self) -> None:
        engine = TesseractEngine(OCRConfig())
        with pytest.raises(RecognitionError, match="not loaded"):
            engine.recognize(_make_section())

    @patch("listing_ocr.ocr.tesseract_engine.pytesseract")
    def test_terminate_is_idempotent(self, mock_tess) -> None:
        mock_tess.get_languages.return_value = ["eng"]
        engine = TesseractEngine(OCRConfig())
        engine.load()
        engine.terminate()
        engine.terminate()
        assert engine.loaded is False


class TestProgress:
    """Tests for progress events and their aggregation."""

    def test_event_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            ProgressEvent(0, 0, "ocr", 1.5)
        with pytest.raises(ValueError):
            ProgressEvent(0, 0, "ocr", -0.1)

    def test_aggregate_is_mean_over_sections(self) -> None:
        aggregator = ProgressAggregator(4)
        aggregator.update(ProgressEvent(0, 0, "ocr", 1.0))
        assert aggregator.update(ProgressEvent(1, 1, "ocr", 1.0)) == pytest.approx(0.5)

    def test_aggregate_never_decreases(self) -> None:
        aggregator = ProgressAggregator(2)
        assert aggregator.update(ProgressEvent(0, 0, "ocr", 1.0)) == 0.5
        assert aggregator.update(ProgressEvent(1, 1, "ocr", 0.0)) == 0.5
        assert aggregator.update(ProgressEvent(0, 0, "ocr", 0.2)) == 0.5
        assert aggregator.update(ProgressEvent(1, 1, "ocr", 1.0)) == 1.0
        assert aggregator.value == 1.0


class TestRecognitionWorkerPool:
    """Tests for pool lifecycle, dispatch, and all-or-nothing joins."""

    def test_initial_state(self) -> None:
        pool = RecognitionWorkerPool(OCRConfig())
        assert pool.state is PoolState.UNINITIALIZED
        assert pool.size == 0
        assert pool.is_ready is False

    def test_initialize_and_terminate(self) -> None:
        terminated: list[int] = []
        fake = _fake_engine_class(terminated=terminated)
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=3))
            pool.initialize()
            assert pool.state is PoolState.READY
            assert pool.size == 3

            pool.terminate_all()
        assert pool.state is PoolState.TERMINATED
        assert pool.size == 0
        assert sorted(terminated) == [0, 1, 2]

    def test_initialize_twice_rejected(self) -> None:
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=1))
            pool.initialize()
            with pytest.raises(PoolStateError):
                pool.initialize()
            assert pool.is_ready
            pool.terminate_all()

    def test_reinitialize_after_terminate(self) -> None:
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=1))
            pool.initialize()
            pool.terminate_all()
            pool.initialize(size=2)
            assert pool.size == 2
            pool.terminate_all()

    def test_terminate_is_idempotent(self) -> None:
        pool = RecognitionWorkerPool(OCRConfig())
        pool.terminate_all()
        assert pool.state is PoolState.UNINITIALIZED
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            pool.initialize(size=1)
        pool.terminate_all()
        pool.terminate_all()
        assert pool.state is PoolState.TERMINATED

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            RecognitionWorkerPool(OCRConfig()).initialize(size=0)

    def test_failed_load_rolls_back(self) -> None:
        terminated: list[int] = []
        fake = _fake_engine_class(fail_load=1, terminated=terminated)
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=3))
            with pytest.raises(RecognitionError):
                pool.initialize()
        assert pool.state is PoolState.UNINITIALIZED
        assert terminated == [0]

    def test_recognize_before_initialize(self) -> None:
        pool = RecognitionWorkerPool(OCRConfig())
        with pytest.raises(NotInitializedError):
            pool.recognize_all([_make_section()])
        with pytest.raises(NotInitializedError):
            pool.recognize(_make_section())

    def test_recognize_all_orders_and_dispatches(self) -> None:
        calls: list[tuple[int, int]] = []
        fake = _fake_engine_class(calls=calls)
        sections = [_make_section(i) for i in range(5)]
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            with RecognitionWorkerPool(OCRConfig(pool_size=2)) as pool:
                results = pool.recognize_all(list(reversed(sections)))

        assert [r.section_index for r in results] == [0, 1, 2, 3, 4]
        assert [r.text for r in results] == [f"text {i}" for i in range(5)]
        assert all(worker == index % 2 for index, worker in calls)
        assert pool.state is PoolState.TERMINATED

    def test_recognize_single_section(self) -> None:
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            with RecognitionWorkerPool(OCRConfig(pool_size=2)) as pool:
                result = pool.recognize(_make_section(3))
        assert result.section_index == 3

    def test_failing_section_fails_batch(self) -> None:
        fake = _fake_engine_class(fail_section=2)
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            with RecognitionWorkerPool(OCRConfig(pool_size=2)) as pool:
                with pytest.raises(RecognitionError) as exc_info:
                    pool.recognize_all([_make_section(i) for i in range(4)])
                assert exc_info.value.section_index == 2
                assert pool.is_ready

    def test_unexpected_error_is_wrapped(self) -> None:
        fake = _fake_engine_class(fail_section=0, error=RuntimeError("crashed"))
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            with RecognitionWorkerPool(OCRConfig(pool_size=1)) as pool:
                with pytest.raises(RecognitionError, match="crashed") as exc_info:
                    pool.recognize_all([_make_section(0), _make_section(1)])
        assert exc_info.value.section_index == 0
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_progress_reported_monotonically(self) -> None:
        reported: list[float] = []
        lock = threading.Lock()

        def on_progress(value: float) -> None:
            with lock:
                reported.append(value)

        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            with RecognitionWorkerPool(OCRConfig(pool_size=2), on_progress) as pool:
                pool.recognize_all([_make_section(i) for i in range(4)])

        assert reported
        assert reported == sorted(reported)
        assert reported[-1] == pytest.approx(1.0)

    def test_recognize_all_without_executor(self) -> None:
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            with RecognitionWorkerPool(OCRConfig(pool_size=1)) as pool:
                executor, pool._executor = pool._executor, None
                with pytest.raises(NotInitializedError):
                    pool.recognize_all([_make_section(0)])
                pool._executor = executor

    def test_single_recognize_after_batch_restarts_progress(self) -> None:
        reported: list[float] = []
        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", _fake_engine_class()):
            with RecognitionWorkerPool(
                OCRConfig(pool_size=2), reported.append
            ) as pool:
                pool.recognize_all([_make_section(i) for i in range(2)])
                reported.clear()
                pool.recognize(_make_section(1))

        assert reported == [0.0, 0.5, 1.0]


class TestOverlappingTeardown:
    """Tests for terminate_all racing another lifecycle transition."""

    def test_terminate_while_draining_waits(self) -> None:
        entered, release = threading.Event(), threading.Event()
        terminated: list[int] = []
        fake = _fake_engine_class(
            terminated=terminated, terminate_gate=(entered, release)
        )
        errors: list[Exception] = []

        def teardown() -> None:
            try:
                pool.terminate_all()
            except Exception as exc:
                errors.append(exc)

        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=1))
            pool.initialize()

        first = threading.Thread(target=teardown)
        first.start()
        assert entered.wait(timeout=5)
        assert pool.state is PoolState.DRAINING

        second = threading.Thread(target=teardown)
        second.start()
        second.join(timeout=0.1)
        assert second.is_alive()

        release.set()
        first.join(timeout=5)
        second.join(timeout=5)
        assert errors == []
        assert pool.state is PoolState.TERMINATED
        assert terminated == [0]

    def test_terminate_while_initializing_releases_pool(self) -> None:
        entered, release = threading.Event(), threading.Event()
        terminated: list[int] = []
        fake = _fake_engine_class(terminated=terminated, load_gate=(entered, release))

        with patch("listing_ocr.ocr.worker_pool.TesseractEngine", fake):
            pool = RecognitionWorkerPool(OCRConfig(pool_size=1))
            init = threading.Thread(target=pool.initialize)
            init.start()
            assert entered.wait(timeout=5)
            assert pool.state is PoolState.INITIALIZING

            teardown = threading.Thread(target=pool.terminate_all)
            teardown.start()
            teardown.join(timeout=0.1)
            assert teardown.is_alive()

            release.set()
            init.join(timeout=5)
            teardown.join(timeout=5)

        assert pool.state is PoolState.TERMINATED
        assert terminated == [0]
