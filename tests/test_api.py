"""Tests for the FastAPI REST endpoints."""

from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from listing_ocr.api.app import app
from listing_ocr.errors import NotInitializedError, RecognitionError
from listing_ocr.models import PoolState, RecognizedText
from listing_ocr.ocr.listing_processor import ListingProcessor
from listing_ocr.ocr.worker_pool import RecognitionWorkerPool
from listing_ocr.utils.config import AppConfig


def _recognized() -> list[RecognizedText]:
    return [
        RecognizedText(0, "SKU-100  Red Wine Bottle  12  A1-B2", 0.9, 6),
        RecognizedText(1, "SKU-200  Green Tea Tin  3  C4", 0.8, 4),
    ]


@pytest.fixture
def mock_pool() -> MagicMock:
    """Create a ready recognition pool stand-in."""
    pool = MagicMock(spec=RecognitionWorkerPool)
    pool.is_ready = True
    pool.state = PoolState.READY
    pool.size = 2
    pool.recognize_all.return_value = _recognized()
    return pool


@pytest.fixture
def client(mock_pool: MagicMock) -> Iterator[TestClient]:
    """Create a FastAPI test client backed by a mocked pool.

    The client is not entered as a context manager, so the lifespan does
    not start a real Tesseract pool.
    """
    app.state.processor = ListingProcessor(AppConfig(), pool=mock_pool)
    yield TestClient(app)
    app.state.processor = None


def _upload(png_bytes: bytes, name: str = "listing.png") -> dict:
    return {"file": (name, png_bytes, "image/png")}


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_ready(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["pool_state"] == "ready"
        assert data["pool_size"] == 2
        assert isinstance(data["tesseract_available"], bool)

    def test_health_degraded_without_processor(self) -> None:
        app.state.processor = None
        response = TestClient(app).get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["pool_state"] == "uninitialized"
        assert data["pool_size"] == 0


class TestExtractEndpoint:
    """Tests for the /extract endpoint."""

    def test_extract_records(self, client: TestClient, png_bytes: bytes) -> None:
        response = client.post("/extract", files=_upload(png_bytes))
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["filename"] == "listing.png"
        assert data["record_count"] == 2
        first = data["records"][0]
        assert first["sku"] == "SKU-100"
        assert first["name"] == "Red Wine Bottle"
        assert first["quantity"] == 12
        assert first["location"] == "A1-B2"
        assert first["status"] == "pending"
        assert first["source"] == "direct_column"
        assert data["confidence"] == pytest.approx(0.86)
        assert data["section_count"] == 4
        assert data["processing_time_ms"] >= 0

    def test_unsupported_type(self, client: TestClient) -> None:
        response = client.post(
            "/extract", files={"file": ("doc.pdf", b"%PDF-1.4", "application/pdf")}
        )
        assert response.status_code == 415
        assert "Unsupported" in response.json()["detail"]

    def test_undecodable_image(self, client: TestClient) -> None:
        response = client.post("/extract", files=_upload(b"not an image"))
        assert response.status_code == 400
        assert response.json()["detail"].startswith("[decode]")

    def test_oversized_image(
        self, client: TestClient, png_bytes: bytes, monkeypatch
    ) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        response = client.post("/extract", files=_upload(png_bytes))
        assert response.status_code == 400
        assert response.json()["detail"].startswith("[decode]")

    def test_no_records(
        self, client: TestClient, mock_pool: MagicMock, png_bytes: bytes
    ) -> None:
        mock_pool.recognize_all.return_value = [RecognizedText(0, "~~~", 0.1, 1)]
        response = client.post("/extract", files=_upload(png_bytes))
        assert response.status_code == 422
        assert "Could not extract product information" in response.json()["detail"]

    def test_recognition_failure(
        self, client: TestClient, mock_pool: MagicMock, png_bytes: bytes
    ) -> None:
        mock_pool.recognize_all.side_effect = RecognitionError("engine crashed", 1)
        response = client.post("/extract", files=_upload(png_bytes))
        assert response.status_code == 502

    def test_pool_not_ready(
        self, client: TestClient, mock_pool: MagicMock, png_bytes: bytes
    ) -> None:
        mock_pool.recognize_all.side_effect = NotInitializedError("terminated")
        response = client.post("/extract", files=_upload(png_bytes))
        assert response.status_code == 503

    def test_missing_processor(self, png_bytes: bytes) -> None:
        app.state.processor = None
        response = TestClient(app).post("/extract", files=_upload(png_bytes))
        assert response.status_code == 503

    def test_missing_file(self, client: TestClient) -> None:
        response = client.post("/extract")
        assert response.status_code == 422


class TestBatchEndpoint:
    """Tests for the /extract/batch endpoint."""

    def test_mixed_batch(self, client: TestClient, png_bytes: bytes) -> None:
        files = [
            ("files", ("good.png", png_bytes, "image/png")),
            ("files", ("notes.txt", b"hello", "text/plain")),
        ]
        response = client.post("/extract/batch", files=files)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["total_documents"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["results"][0]["result"]["record_count"] == 2
        assert data["results"][1]["filename"] == "notes.txt"
        assert "Unsupported" in data["results"][1]["error"]

    def test_all_failed(self, client: TestClient) -> None:
        files = [("files", ("bad.png", b"junk", "image/png"))]
        response = client.post("/extract/batch", files=files)
        data = response.json()
        assert data["success"] is False
        assert data["failed"] == 1
