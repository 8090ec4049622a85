"""Application configuration"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MailSettings(BaseModel):
    """
    Outgoing mail relay configuration.

    WHY: Frozen so the sender can hold it for its whole lifetime without
    anything mutating it underneath. Built once from Settings at startup
    and injected into InvoiceEmailService.
    """

    model_config = ConfigDict(frozen=True)

    smtp_host: str = ""
    smtp_port: int = 587
    sender_name: str = ""
    sender_email: str = ""
    username: str = ""
    password: SecretStr = SecretStr("")

    @property
    def is_complete(self) -> bool:
        """Host and username are the minimum needed to open a session."""
        return bool(self.smtp_host) and bool(self.username)

    @property
    def from_address(self) -> str:
        # Gmail rewrites From to the authenticated account anyway
        return self.sender_email or self.username


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Invoice Mailer API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "postgresql://localhost:5432/ecommerce"

    # Branding
    COMPANY_NAME: str = "InnovaTech"

    # Invoice email
    INVOICE_TEMPLATE_NAME: str = "invoice.html"
    INVOICE_TEMPLATE_DIR: Optional[str] = None  # defaults to the bundled templates/emails

    # SMTP relay
    # WHY: Gmail needs port 587 (STARTTLS) or 465 (SSL) and an App Password,
    # see docs/gmail-smtp-troubleshooting.md
    MAIL_SMTP_HOST: str = "smtp.gmail.com"
    MAIL_SMTP_PORT: int = 587
    MAIL_SENDER_NAME: str = "InnovaTech"
    MAIL_SENDER_EMAIL: str = ""
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: SecretStr = SecretStr("")

    @property
    def mail_settings(self) -> MailSettings:
        """Immutable snapshot of the mail relay configuration."""
        return MailSettings(
            smtp_host=self.MAIL_SMTP_HOST.strip(),
            smtp_port=self.MAIL_SMTP_PORT,
            sender_name=self.MAIL_SENDER_NAME,
            sender_email=self.MAIL_SENDER_EMAIL.strip(),
            username=self.MAIL_USERNAME.strip(),
            password=self.MAIL_PASSWORD,
        )

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
