"""
Pytest configuration and shared fixtures for backend tests.
"""
import datetime
import json
from decimal import Decimal
from typing import AsyncGenerator, Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from bonscan.config import Settings, settings
from bonscan.db.main import Base
from bonscan.categories.corrections import InMemoryCorrectionStore
from bonscan.categories.services import CategorizationEngine
from bonscan.receipts.schemas import LineItem, ProvenanceFlags, ReceiptDraft

# Import all models to ensure they are registered with Base
from bonscan.categories.models import CategorizationCorrection  # noqa: F401

# Minimalny nagłówek JPEG wystarcza do walidacji magic bytes
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 128


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with overridden values."""
    return Settings(
        ENV="test",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        GEMINI_API_KEY="test-gemini-key",
        CATEGORIZATION_BATCH_DELAY=0.0,
    )


@pytest.fixture(autouse=True)
def no_batch_delay(monkeypatch: pytest.MonkeyPatch):
    """Batches still run in groups, just without the pause between them."""
    monkeypatch.setattr(settings, "CATEGORIZATION_BATCH_DELAY", 0.0)


@pytest.fixture
async def test_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session with in-memory SQLite database.
    Uses StaticPool for synchronous access in async context.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def correction_store() -> InMemoryCorrectionStore:
    return InMemoryCorrectionStore()


@pytest.fixture
def categorization_engine(correction_store: InMemoryCorrectionStore) -> CategorizationEngine:
    return CategorizationEngine(correction_store=correction_store)


@pytest.fixture
def receipt_image() -> bytes:
    return JPEG_BYTES


@pytest.fixture
def gemini_response() -> Callable[[Optional[str]], MagicMock]:
    """Factory for a generate_content_async() result with the given .text."""

    def _build(text: Optional[str]) -> MagicMock:
        response = MagicMock()
        response.text = text
        return response

    return _build


@pytest.fixture
def mock_gemini_model() -> MagicMock:
    """Mock genai.GenerativeModel; set generate_content_async.return_value/side_effect per test."""
    model = MagicMock()
    model.generate_content_async = AsyncMock()
    return model


@pytest.fixture
def gemini_receipt_json() -> Callable[..., str]:
    """Factory for a structured-output payload as Gemini returns it."""

    def _build(
        retailer: Optional[str] = "Лидл",
        total_amount: float = 45.20,
        purchase_date: Optional[str] = "2025-10-01",
        items: Optional[List[dict]] = None,
        confidence: Optional[int] = 95,
    ) -> str:
        if items is None:
            items = [
                {"name": "ХЛЯБ ДОБРУДЖА 500Г", "total_price": 1.89, "quantity": 1.0, "unit_price": 1.89},
                {"name": "VEREIA MLEKO 3.6% 1L", "total_price": 2.79, "quantity": 1.0, "unit_price": 2.79},
            ]
        return json.dumps({
            "retailer": retailer,
            "total_amount": total_amount,
            "purchase_date": purchase_date,
            "items": items,
            "confidence": confidence,
        }, ensure_ascii=False)

    return _build


@pytest.fixture
def make_draft() -> Callable[..., ReceiptDraft]:
    """Factory for a valid ReceiptDraft; override any field via kwargs."""

    def _build(**overrides) -> ReceiptDraft:
        fields = {
            "retailer": "Лидл",
            "total": Decimal("4.68"),
            "date": datetime.date(2025, 10, 1),
            "items": [
                LineItem(name="ХЛЯБ ДОБРУДЖА 500Г", total_price=Decimal("1.89"), unit_price=Decimal("1.89")),
                LineItem(name="VEREIA MLEKO 3.6% 1L", total_price=Decimal("2.79"), unit_price=Decimal("2.79")),
            ],
            "confidence": 90,
            "provenance": ProvenanceFlags(used_vision_model=True),
        }
        fields.update(overrides)
        return ReceiptDraft(**fields)

    return _build
