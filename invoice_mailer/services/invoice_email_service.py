"""
Invoice email service.

WHAT: Sends the invoice for a completed purchase: HTML body rendered from a
template plus the PDF invoice as attachment, over the configured SMTP relay.

WHY: Customers get their invoice right after checkout; operators need every
failure classified and logged with enough detail to tell a bad
configuration from a transient relay problem.

HOW: One linear pipeline per call:
    validate -> render HTML -> generate PDF -> compose -> transmit -> log
Collaborators (renderer, PDF generator, transport) and the immutable mail
configuration are injected. Failures raise an InvoiceEmailError subclass;
nothing is retried here, retries belong to the caller.

Design decisions:
- Fail fast: no render, PDF or network work on invalid input or config
- The attachment buffer is closed only after the transport call returns
  or fails, never while the message may still be read
- Classified errors propagate unchanged; anything else is wrapped in
  UnknownInvoiceEmailError with the original as __cause__
"""

import io
import logging
from typing import Optional

from sqlalchemy import inspect

from invoice_mailer.core.config import MailSettings, settings
from invoice_mailer.core.exceptions import (
    IncompleteDataError,
    InvalidInputError,
    InvoiceEmailError,
    MailConfigurationError,
    MailTransportError,
    UnknownInvoiceEmailError,
)
from invoice_mailer.models.buy import Buy
from invoice_mailer.services.mail_transport import (
    SMTP_TIMEOUT_SECONDS,
    ComposedMessage,
    MailAttachment,
    MailTransport,
    get_mail_transport,
)
from invoice_mailer.services.pdf_service import InvoicePdfGenerator, get_pdf_service
from invoice_mailer.services.template_service import TemplateRenderer, get_template_renderer

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def invoice_attachment_filename(buy_id: int) -> str:
    return f"Factura_{buy_id}.pdf"


def _relation_loaded(buy: Buy, relation: str) -> bool:
    return relation not in inspect(buy).unloaded


class InvoiceEmailService:
    """
    Sends invoice emails for purchases.

    Example:
        service = InvoiceEmailService(
            mail_settings=settings.mail_settings,
            template_renderer=JinjaTemplateRenderer(),
            pdf_generator=PDFService(),
            transport=SmtpTransport(),
        )
        await service.send_invoice_email(buy, "ana@example.com", "Ana")
    """

    def __init__(
        self,
        mail_settings: MailSettings,
        template_renderer: TemplateRenderer,
        pdf_generator: InvoicePdfGenerator,
        transport: MailTransport,
        template_name: Optional[str] = None,
        company_name: Optional[str] = None,
    ):
        """
        Initialize invoice email service.

        Args:
            mail_settings: Relay host/port, sender and credentials
            template_renderer: Renders the HTML body
            pdf_generator: Produces the PDF attachment
            transport: Opens relay connections
            template_name: Invoice template (defaults to settings.INVOICE_TEMPLATE_NAME)
            company_name: Shown in the subject (defaults to settings.COMPANY_NAME)
        """
        self._mail_settings = mail_settings
        self._template_renderer = template_renderer
        self._pdf_generator = pdf_generator
        self._transport = transport
        self._template_name = template_name or settings.INVOICE_TEMPLATE_NAME
        self._company_name = company_name or settings.COMPANY_NAME

    @property
    def mail_settings(self) -> MailSettings:
        return self._mail_settings

    def build_subject(self, buy_id: int) -> str:
        return f"Factura {self._company_name} - Orden #{buy_id}"

    async def send_invoice_email(
        self,
        buy: Optional[Buy],
        recipient_email: Optional[str],
        recipient_name: Optional[str] = None,
    ) -> None:
        """
        Render, attach and send the invoice for a buy.

        The buy must have `items` and `customer` eagerly loaded
        (see BuyDAO.get_with_invoice_relations).

        Args:
            buy: Completed purchase
            recipient_email: Destination address
            recipient_name: Display name for the To header

        Raises:
            InvalidInputError: Missing buy or blank recipient address
            IncompleteDataError: Items or customer not loaded (or empty)
            MailConfigurationError: SMTP host or username not configured
            TemplateNotFoundError: Invoice template missing
            MailTransportError: Relay rejected or dropped the message
            UnknownInvoiceEmailError: Anything else, original kept as __cause__
        """
        buy_id = getattr(buy, "id", None)
        log_extra = {"buy_id": buy_id, "recipient": recipient_email}

        logger.info(
            f"Starting invoice email for order {buy_id} to {recipient_email}",
            extra=log_extra,
        )

        try:
            self._validate(buy, recipient_email)
            mail = self._mail_settings

            logger.info(
                f"Mail configuration: host={mail.smtp_host}, port={mail.smtp_port}, "
                f"username={mail.username}, sender={mail.from_address}",
                extra={
                    **log_extra,
                    "smtp_host": mail.smtp_host,
                    "smtp_port": mail.smtp_port,
                    "smtp_username": mail.username,
                },
            )

            html = await self._template_renderer.render(self._template_name, buy)
            logger.debug(
                f"Invoice HTML rendered: {len(html)} characters",
                extra={**log_extra, "html_length": len(html)},
            )

            pdf_bytes = self._pdf_generator.generate_invoice_pdf(buy)
            logger.debug(
                f"Invoice PDF generated: {len(pdf_bytes)} bytes",
                extra={**log_extra, "pdf_size": len(pdf_bytes)},
            )

            pdf_buffer = io.BytesIO(pdf_bytes)
            try:
                message = self._compose_message(buy, recipient_email, recipient_name, html, pdf_buffer)
                await self._transmit(message, log_extra)
            finally:
                pdf_buffer.close()

            logger.info(
                f"Invoice email sent to {recipient_email} for order {buy_id}",
                extra=log_extra,
            )

        except MailTransportError as exc:
            logger.error(
                f"SMTP error sending invoice email to {recipient_email} for order {buy_id}: "
                f"{exc.message}",
                extra={**log_extra, "smtp_code": exc.smtp_code},
                exc_info=True,
            )
            raise
        except InvoiceEmailError as exc:
            logger.error(
                f"Invoice email for order {buy_id} failed: {exc.message}",
                extra={**log_extra, "error": exc.__class__.__name__},
            )
            raise
        except Exception as exc:
            logger.exception(
                f"Unexpected error sending invoice email to {recipient_email} for order {buy_id}",
                extra=log_extra,
            )
            raise UnknownInvoiceEmailError(
                message=f"Error sending invoice email: {exc}",
                buy_id=buy_id,
            ) from exc

    def _validate(self, buy: Optional[Buy], recipient_email: Optional[str]) -> None:
        if buy is None:
            raise InvalidInputError(message="Buy must not be None", field="buy")

        if not isinstance(recipient_email, str) or not recipient_email.strip():
            raise InvalidInputError(
                message="Recipient email must not be empty",
                field="recipient_email",
            )

        if not _relation_loaded(buy, "items") or not buy.items:
            raise IncompleteDataError(
                message=(
                    f"Buy {buy.id} has no items. Load the items relation "
                    f"(BuyDAO.get_with_invoice_relations) before sending the invoice"
                ),
                buy_id=buy.id,
                relation="items",
            )

        if not _relation_loaded(buy, "customer") or buy.customer is None:
            raise IncompleteDataError(
                message=(
                    f"Buy {buy.id} has no customer loaded. Load the customer relation "
                    f"(BuyDAO.get_with_invoice_relations) before sending the invoice"
                ),
                buy_id=buy.id,
                relation="customer",
            )

        if not self._mail_settings.is_complete:
            raise MailConfigurationError(
                message=(
                    f"Mail configuration is incomplete. "
                    f"SmtpHost: {self._mail_settings.smtp_host or '(empty)'}, "
                    f"Username: {self._mail_settings.username or '(empty)'}"
                ),
                smtp_host=self._mail_settings.smtp_host,
                username=self._mail_settings.username,
            )

    def _compose_message(
        self,
        buy: Buy,
        recipient_email: str,
        recipient_name: Optional[str],
        html: str,
        pdf_buffer: io.BytesIO,
    ) -> ComposedMessage:
        attachment = MailAttachment(
            filename=invoice_attachment_filename(buy.id),
            content_type=PDF_CONTENT_TYPE,
            buffer=pdf_buffer,
        )
        message = ComposedMessage(
            sender_email=self._mail_settings.from_address,
            sender_name=self._mail_settings.sender_name,
            recipient_email=recipient_email.strip(),
            recipient_name=recipient_name or "",
            subject=self.build_subject(buy.id),
            body=html,
            is_html=True,
            attachments=[attachment],
        )
        logger.debug(
            f"Message composed. From: {message.sender_email}, To: {message.recipient_email}, "
            f"Subject: {message.subject}, Attachment: {attachment.filename}"
        )
        return message

    async def _transmit(self, message: ComposedMessage, log_extra: dict) -> None:
        mail = self._mail_settings
        logger.info(
            f"Sending email via SMTP {mail.smtp_host}:{mail.smtp_port}",
            extra=log_extra,
        )
        async with self._transport.connect(
            mail.smtp_host, mail.smtp_port, timeout=SMTP_TIMEOUT_SECONDS
        ) as connection:
            await connection.authenticate(mail.username, mail.password.get_secret_value())
            await connection.send(message)


_invoice_email_service: Optional[InvoiceEmailService] = None


def get_invoice_email_service() -> InvoiceEmailService:
    """
    Get or create the global invoice email service.

    WHY: Mail configuration is read once at startup and shared read-only.

    Returns:
        InvoiceEmailService instance
    """
    global _invoice_email_service

    if _invoice_email_service is None:
        _invoice_email_service = InvoiceEmailService(
            mail_settings=settings.mail_settings,
            template_renderer=get_template_renderer(),
            pdf_generator=get_pdf_service(),
            transport=get_mail_transport(),
        )

    return _invoice_email_service
