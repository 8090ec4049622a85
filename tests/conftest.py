"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient

from invoice_mailer.core.config import MailSettings
from invoice_mailer.db.session import get_db
from invoice_mailer.main import app
from invoice_mailer.models.base import Base
from invoice_mailer.services.invoice_email_service import (
    InvoiceEmailService,
    get_invoice_email_service,
)
from tests.doubles import RecordingTransport, StaticTemplateRenderer, StubPdfGenerator


# WHY: In-memory SQLite keeps tests free of external services. StaticPool
# shares the single connection so every session sees the same database.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def mail_settings() -> MailSettings:
    """Complete Gmail-style relay configuration."""
    return MailSettings(
        smtp_host="smtp.gmail.com",
        smtp_port=587,
        sender_name="InnovaTech",
        sender_email="facturas@innovatech.example",
        username="facturas@innovatech.example",
        password=SecretStr("app-password-1234"),
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def renderer() -> StaticTemplateRenderer:
    return StaticTemplateRenderer()


@pytest.fixture
def pdf_generator() -> StubPdfGenerator:
    return StubPdfGenerator()


@pytest.fixture
def email_service(
    mail_settings: MailSettings,
    renderer: StaticTemplateRenderer,
    pdf_generator: StubPdfGenerator,
    transport: RecordingTransport,
) -> InvoiceEmailService:
    """Invoice email service wired to test doubles."""
    return InvoiceEmailService(
        mail_settings=mail_settings,
        template_renderer=renderer,
        pdf_generator=pdf_generator,
        transport=transport,
        template_name="invoice.html",
        company_name="InnovaTech",
    )


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    email_service: InvoiceEmailService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server. Database and email service are overridden with the
    test session and the test-double service.

    Yields:
        AsyncClient: HTTP client for making test requests
    """
    from httpx import ASGITransport

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_invoice_email_service] = lambda: email_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
