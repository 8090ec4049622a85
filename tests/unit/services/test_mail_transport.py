"""
Unit tests for the mail transport.

WHAT: Tests message composition and the smtplib-backed transport.

WHY: Ensures encryption is always negotiated, the fixed timeout is passed to
the socket, sessions are released, and relay failures keep their SMTP code.

HOW: smtplib.SMTP / SMTP_SSL are patched with mocks; no network is used.
"""

import asyncio
import io
import smtplib
import socket
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from invoice_mailer.core.exceptions import MailTransportError, SmtpStatusCode
from invoice_mailer.services.mail_transport import (
    SMTP_TIMEOUT_SECONDS,
    ComposedMessage,
    MailAttachment,
    SmtpTransport,
    _transport_error,
)

PDF_BYTES = b"%PDF-1.4 test"


def _message(buffer: io.BytesIO) -> ComposedMessage:
    return ComposedMessage(
        sender_email="facturas@innovatech.example",
        sender_name="InnovaTech",
        recipient_email="ana@example.com",
        recipient_name="Ana García",
        subject="Factura InnovaTech - Orden #42",
        body="<p>Gracias por su compra</p>",
        attachments=[MailAttachment("Factura_42.pdf", "application/pdf", buffer)],
    )


class TestComposedMessage:
    """Tests for MIME construction."""

    def test_to_mime_html_body_and_pdf(self):
        mime = _message(io.BytesIO(PDF_BYTES)).to_mime()

        assert mime["Subject"] == "Factura InnovaTech - Orden #42"
        assert "facturas@innovatech.example" in mime["From"]
        assert "ana@example.com" in mime["To"]
        assert "Gracias por su compra" in mime.get_body(preferencelist=("html",)).get_content()

        attachment = next(mime.iter_attachments())
        assert attachment.get_filename() == "Factura_42.pdf"
        assert attachment.get_content_type() == "application/pdf"
        assert attachment.get_content() == PDF_BYTES

    def test_plain_text_body(self):
        message = _message(io.BytesIO(PDF_BYTES))
        message.is_html = False

        mime = message.to_mime()

        assert mime.get_body(preferencelist=("plain",)) is not None

    def test_closed_buffer_cannot_be_read(self):
        buffer = io.BytesIO(PDF_BYTES)
        message = _message(buffer)
        buffer.close()

        with pytest.raises(ValueError, match="Factura_42.pdf"):
            message.to_mime()


@pytest.fixture
def smtp_mock():
    with patch("invoice_mailer.services.mail_transport.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.connect.return_value = (220, b"smtp.gmail.com ESMTP ready")
        yield smtp_cls


@pytest.fixture
def smtp_ssl_mock():
    with patch("invoice_mailer.services.mail_transport.smtplib.SMTP_SSL") as smtp_ssl_cls:
        smtp_ssl_cls.return_value.connect.return_value = (220, b"smtp.gmail.com ESMTP ready")
        yield smtp_ssl_cls


class TestSmtpTransport:
    """Tests for SmtpTransport against a mocked smtplib."""

    @pytest.mark.asyncio
    async def test_starttls_on_submission_port(self, smtp_mock, smtp_ssl_mock):
        transport = SmtpTransport()

        async with transport.connect("smtp.gmail.com", 587) as connection:
            await connection.authenticate("facturas@innovatech.example", "secret")
            await connection.send(_message(io.BytesIO(PDF_BYTES)))

        smtp_mock.assert_called_once_with(timeout=SMTP_TIMEOUT_SECONDS)
        smtp_ssl_mock.assert_not_called()
        smtp = smtp_mock.return_value
        smtp.connect.assert_called_once_with("smtp.gmail.com", 587)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("facturas@innovatech.example", "secret")
        smtp.send_message.assert_called_once()
        smtp.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_sends_mime_with_attachment(self, smtp_mock):
        async with SmtpTransport().connect("smtp.gmail.com", 587) as connection:
            await connection.send(_message(io.BytesIO(PDF_BYTES)))

        sent = smtp_mock.return_value.send_message.call_args.args[0]
        attachment = next(sent.iter_attachments())
        assert attachment.get_content() == PDF_BYTES

    @pytest.mark.asyncio
    async def test_implicit_tls_port(self, smtp_mock, smtp_ssl_mock):
        transport = SmtpTransport()

        async with transport.connect("smtp.gmail.com", 465, timeout=SMTP_TIMEOUT_SECONDS):
            pass

        smtp_mock.assert_not_called()
        args, kwargs = smtp_ssl_mock.call_args
        assert args == ()
        smtp_ssl_mock.return_value.connect.assert_called_once_with("smtp.gmail.com", 465)
        smtp_ssl_mock.return_value.starttls.assert_not_called()
        assert kwargs["timeout"] == 30
        assert kwargs["context"] is not None
        smtp_ssl_mock.return_value.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_authentication_rejected(self, smtp_mock):
        smtp_mock.return_value.login.side_effect = smtplib.SMTPAuthenticationError(
            535, b"5.7.8 Username and Password not accepted"
        )

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("smtp.gmail.com", 587) as connection:
                await connection.authenticate("facturas@innovatech.example", "wrong")

        error = exc_info.value
        assert error.smtp_code == 535
        assert error.status is SmtpStatusCode.AUTHENTICATION_REJECTED
        assert "Username and Password not accepted" in error.message
        assert "AUTHENTICATION_REJECTED (535)" in error.message
        assert "App Password" in error.message
        assert isinstance(error.__cause__, smtplib.SMTPAuthenticationError)
        smtp_mock.return_value.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_recipient_refused_keeps_code(self, smtp_mock):
        smtp_mock.return_value.send_message.side_effect = smtplib.SMTPRecipientsRefused(
            {"ana@example.com": (550, b"5.1.1 The email account does not exist")}
        )

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("smtp.gmail.com", 587) as connection:
                await connection.send(_message(io.BytesIO(PDF_BYTES)))

        assert exc_info.value.status is SmtpStatusCode.MAILBOX_UNAVAILABLE
        assert "does not exist" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connect_timeout(self, smtp_mock):
        smtp_mock.side_effect = TimeoutError("timed out")

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("smtp.gmail.com", 587):
                pass

        assert "timed out after 30 seconds" in exc_info.value.message
        assert "MAIL_SMTP_HOST" in exc_info.value.message
        assert exc_info.value.smtp_code is None
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_connection_refused(self, smtp_mock):
        smtp_mock.side_effect = ConnectionRefusedError(111, "Connection refused")

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("localhost", 2525):
                pass

        assert "connecting to localhost:2525" in exc_info.value.message
        assert "Connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_relay_without_starttls_is_rejected(self, smtp_mock):
        smtp_mock.return_value.starttls.side_effect = smtplib.SMTPNotSupportedError(
            "STARTTLS extension not supported by server."
        )

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("relay.local", 25):
                pass

        assert "STARTTLS" in exc_info.value.message
        smtp_mock.return_value.close.assert_called_once()
        smtp_mock.return_value.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_quit_failure_falls_back_to_close(self, smtp_mock):
        smtp_mock.return_value.quit.side_effect = smtplib.SMTPServerDisconnected("gone")

        async with SmtpTransport().connect("smtp.gmail.com", 587):
            pass

        smtp_mock.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_custom_ssl_context_is_used(self, smtp_mock):
        context = MagicMock()

        async with SmtpTransport(ssl_context=context).connect("smtp.gmail.com", 587):
            pass

        smtp_mock.return_value.starttls.assert_called_once_with(context=context)

    @pytest.mark.asyncio
    async def test_unexpected_greeting(self, smtp_mock):
        smtp_mock.return_value.connect.return_value = (554, b"No SMTP service here")

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("smtp.gmail.com", 587):
                pass

        assert exc_info.value.status is SmtpStatusCode.TRANSACTION_FAILED
        smtp_mock.return_value.starttls.assert_not_called()
        smtp_mock.return_value.close.assert_called_once()


class TestSmtpTransportLifecycle:
    """The worker thread and the deadline govern when cleanup may run."""

    @pytest.mark.asyncio
    async def test_cancelled_send_finishes_before_quit(self, smtp_mock):
        events = []
        sending = threading.Event()

        def slow_send(mime):
            events.append("send_start")
            sending.set()
            time.sleep(0.3)
            events.append("send_end")

        smtp = smtp_mock.return_value
        smtp.send_message.side_effect = slow_send
        smtp.quit.side_effect = lambda: events.append("quit")

        async def send():
            async with SmtpTransport().connect("smtp.gmail.com", 587) as connection:
                await connection.send(_message(io.BytesIO(PDF_BYTES)))

        task = asyncio.create_task(send())
        assert await asyncio.to_thread(sending.wait, 5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert events == ["send_start", "send_end", "quit"]
        smtp.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_deadline_covers_the_whole_session(self, smtp_mock):
        smtp = smtp_mock.return_value
        smtp.login.side_effect = lambda username, password: time.sleep(0.5)

        with pytest.raises(MailTransportError) as exc_info:
            async with SmtpTransport().connect("smtp.gmail.com", 587, timeout=0.2) as connection:
                await connection.authenticate("facturas@innovatech.example", "secret")

        assert "timed out after 0.2 seconds while authenticating" in exc_info.value.message
        assert exc_info.value.smtp_code is None
        smtp.sock.shutdown.assert_called_with(socket.SHUT_RDWR)
        smtp.quit.assert_not_called()
        smtp.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_slow_relay_is_cut_off_at_deadline(self):
        async def drip_greeting(reader, writer):
            try:
                while True:
                    writer.write(b"220-relay.test still greeting\r\n")
                    await writer.drain()
                    try:
                        if await asyncio.wait_for(reader.read(100), 0.3) == b"":
                            break
                    except asyncio.TimeoutError:
                        continue
            except ConnectionError:
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(drip_greeting, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        started = time.monotonic()
        try:
            with pytest.raises(MailTransportError) as exc_info:
                async with SmtpTransport().connect("127.0.0.1", port, timeout=1):
                    pass
            elapsed = time.monotonic() - started
        finally:
            server.close()
            await server.wait_closed()

        assert elapsed < 3
        assert f"timed out after 1 seconds while connecting to 127.0.0.1:{port}" in exc_info.value.message

    def test_disconnect_caused_by_read_timeout_reads_as_timeout(self):
        try:
            try:
                raise TimeoutError("timed out")
            except TimeoutError as exc:
                raise smtplib.SMTPServerDisconnected(f"Connection unexpectedly closed: {exc}")
        except smtplib.SMTPServerDisconnected as exc:
            error = _transport_error("sending message", exc)

        assert error.message.startswith("SMTP timed out after 30 seconds while sending message")
        assert "MAIL_SMTP_HOST" in error.message

    def test_plain_disconnect_is_not_a_timeout(self):
        error = _transport_error("sending message", smtplib.SMTPServerDisconnected("Connection closed"))

        assert "timed out" not in error.message
        assert "Connection closed" in error.message
