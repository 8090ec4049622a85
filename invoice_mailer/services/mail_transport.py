"""
Mail transport: composed message types and the SMTP client.

WHAT: Value types for an outgoing email (ComposedMessage, MailAttachment)
and the transport that opens an authenticated, encrypted SMTP session and
transmits them.

WHY: The invoice pipeline only talks to MailTransport/MailConnection, so
tests replace the network with a double that inspects the message while
"sending" it.

HOW: SmtpTransport wraps the standard library smtplib. Blocking calls run
in a worker thread (asyncio.to_thread) so callers suspend instead of
blocking the event loop. A call in flight is always awaited to the end,
even on cancellation, and one deadline per connection bounds connect,
login, send and QUIT together; past it the socket is shut down. Encryption
is mandatory: implicit TLS on port 465, STARTTLS on any other port. Every
smtplib/socket failure surfaces as MailTransportError carrying the SMTP
reply code when there is one.
"""

import asyncio
import io
import logging
import smtplib
import socket
import ssl
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, AsyncContextManager, AsyncIterator, Callable, List, Optional

from invoice_mailer.core.exceptions import MailTransportError, SmtpStatusCode

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30
IMPLICIT_TLS_PORT = 465
ABORT_RETRY_SECONDS = 0.1

# Operator hints, taken from docs/gmail-smtp-troubleshooting.md
_STATUS_HINTS = {
    SmtpStatusCode.AUTHENTICATION_REJECTED: (
        "Gmail rejects the regular account password: enable 2-Step Verification, "
        "generate an App Password and set it as MAIL_PASSWORD"
    ),
    SmtpStatusCode.AUTHENTICATION_REQUIRED: (
        "The relay requires authentication over TLS: check MAIL_USERNAME/MAIL_PASSWORD"
    ),
}
_CONNECTIVITY_HINT = (
    "Check MAIL_SMTP_HOST and MAIL_SMTP_PORT (Gmail: 587 with STARTTLS or 465 with SSL) "
    "and that outbound SMTP is not blocked"
)


# ============================================================================
# Composed message
# ============================================================================


@dataclass
class MailAttachment:
    """
    A binary attachment backed by an in-memory buffer.

    The buffer is owned by whoever created it; the transport only reads it.
    """

    filename: str
    content_type: str
    buffer: io.BytesIO

    def read(self) -> bytes:
        """Current buffer contents. Fails if the owner already closed it."""
        if self.buffer.closed:
            raise ValueError(f"Attachment buffer for {self.filename} is closed")
        return self.buffer.getvalue()


@dataclass
class ComposedMessage:
    """A fully assembled email ready for transmission."""

    sender_email: str
    sender_name: str
    recipient_email: str
    recipient_name: str
    subject: str
    body: str
    is_html: bool = True
    attachments: List[MailAttachment] = field(default_factory=list)

    def to_mime(self) -> EmailMessage:
        """
        Build the wire message.

        Attachment buffers are read here, so this must run while they are
        still open.
        """
        msg = EmailMessage()
        msg["From"] = formataddr((self.sender_name, self.sender_email))
        msg["To"] = formataddr((self.recipient_name, self.recipient_email))
        msg["Subject"] = self.subject
        msg.set_content(self.body, subtype="html" if self.is_html else "plain")

        for attachment in self.attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            msg.add_attachment(
                attachment.read(),
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )

        return msg


# ============================================================================
# Transport interface
# ============================================================================


class MailConnection(ABC):
    """An open session with a mail relay."""

    @abstractmethod
    async def authenticate(self, username: str, password: str) -> None:
        """
        Log in to the relay.

        Raises:
            MailTransportError: If the relay rejects the credentials
        """
        pass

    @abstractmethod
    async def send(self, message: ComposedMessage) -> None:
        """
        Transmit a message; returns once the relay accepted it.

        Raises:
            MailTransportError: On any relay or network failure
        """
        pass


class MailTransport(ABC):
    """Opens connections to a mail relay."""

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int,
        timeout: float = SMTP_TIMEOUT_SECONDS,
    ) -> AsyncContextManager[MailConnection]:
        """
        Open an encrypted connection, released when the context exits.

        Raises:
            MailTransportError: If the relay cannot be reached
        """
        pass


# ============================================================================
# SMTP implementation
# ============================================================================


def _decode_smtp_error(error: Any) -> str:
    if isinstance(error, bytes):
        return error.decode("utf-8", errors="replace")
    return str(error)


def _timed_out(exc: Optional[BaseException]) -> bool:
    """smtplib reports read timeouts as SMTPServerDisconnected("... timed out")."""
    if exc is not None and "timed out" in str(exc):
        return True
    while exc is not None:
        if isinstance(exc, TimeoutError):
            return True
        exc = exc.__cause__ or exc.__context__
    return False


def _transport_error(
    action: str,
    exc: Exception,
    timeout: float = SMTP_TIMEOUT_SECONDS,
) -> MailTransportError:
    """Translate an smtplib/socket failure into MailTransportError."""
    smtp_code: Optional[int] = None
    smtp_error: Optional[str] = None

    if isinstance(exc, smtplib.SMTPResponseException):
        smtp_code = exc.smtp_code
        smtp_error = _decode_smtp_error(exc.smtp_error)
    elif isinstance(exc, smtplib.SMTPRecipientsRefused) and exc.recipients:
        smtp_code, raw_error = next(iter(exc.recipients.values()))
        smtp_error = _decode_smtp_error(raw_error)

    timed_out = smtp_code is None and _timed_out(exc)
    if timed_out:
        message = f"SMTP timed out after {timeout:g} seconds while {action}"
    else:
        message = f"SMTP error while {action}: {smtp_error or exc}"

    error = MailTransportError(message=message, smtp_code=smtp_code, smtp_error=smtp_error)
    if error.status is not None:
        error.message += f". StatusCode: {error.status.name} ({error.status.value})"
    elif smtp_code is not None:
        error.message += f". StatusCode: {smtp_code}"

    hint = _STATUS_HINTS.get(error.status)
    if hint is None and smtp_code is None and (timed_out or isinstance(exc, OSError)):
        hint = _CONNECTIVITY_HINT
    if hint:
        error.message += f". {hint}"
    error.args = (error.message,)
    return error


def _remaining(deadline: float) -> float:
    return max(deadline - time.monotonic(), 0.0)


async def _in_worker(
    func: Callable[..., Any],
    *args: Any,
    deadline: float,
    abort: Callable[[], None],
) -> Any:
    """
    Run a blocking smtplib call in a worker thread and wait for it to end.

    The call has always finished when this returns or raises, including when
    the awaiting task is cancelled, so cleanup in the caller (closing the
    attachment buffer, QUIT) never overlaps it. When the deadline passes,
    `abort` shuts the socket down to unblock the call and TimeoutError is
    raised once it has returned.

    Raises:
        TimeoutError: Deadline passed before or during the call
        asyncio.CancelledError: Task cancelled; raised after the call ended
    """
    if _remaining(deadline) <= 0:
        raise TimeoutError("SMTP deadline passed")

    worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
    cancelled: Optional[asyncio.CancelledError] = None
    aborted = False

    while not worker.done():
        try:
            await asyncio.wait(
                {worker}, timeout=ABORT_RETRY_SECONDS if aborted else _remaining(deadline)
            )
        except asyncio.CancelledError as exc:
            # A thread cannot be interrupted, keep waiting for it
            cancelled = exc
            continue
        if not worker.done():
            # Repeated because the socket may not exist yet on the first try
            abort()
            aborted = True

    error = None if worker.cancelled() else worker.exception()
    if cancelled is not None:
        if error is not None:
            logger.debug(f"SMTP call failed after cancellation: {error}")
        raise cancelled
    if aborted:
        raise TimeoutError("SMTP deadline exceeded") from error
    return worker.result()


class SmtpConnection(MailConnection):
    """
    MailConnection over an smtplib session.

    Every blocking call shares one deadline, fixed when the connection is
    opened, so the timeout bounds the whole session rather than each
    socket read.
    """

    def __init__(self, host: str, port: int, timeout: float = SMTP_TIMEOUT_SECONDS):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._deadline = time.monotonic() + timeout
        self._smtp: Optional[smtplib.SMTP] = None

    def attach(self, smtp: smtplib.SMTP) -> None:
        self._smtp = smtp

    def abort(self) -> None:
        """Shut the socket down so a call blocked on it fails promptly."""
        sock = getattr(self._smtp, "sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug(f"SMTP socket shutdown failed: {exc}")

    async def run(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await _in_worker(func, *args, deadline=self._deadline, abort=self.abort)
        except (smtplib.SMTPException, OSError) as exc:
            raise _transport_error(action, exc, self.timeout) from exc

    async def authenticate(self, username: str, password: str) -> None:
        await self.run("authenticating", self._smtp.login, username, password)
        logger.debug(f"Authenticated with {self.host}:{self.port} as {username}")

    async def send(self, message: ComposedMessage) -> None:
        # Attachments are read here, before the worker thread takes over
        mime = message.to_mime()
        await self.run("sending message", self._smtp.send_message, mime)

    async def close(self) -> None:
        if self._smtp is None:
            return
        try:
            await _in_worker(self._smtp.quit, deadline=self._deadline, abort=self.abort)
        except (smtplib.SMTPException, OSError) as exc:
            logger.debug(f"SMTP QUIT failed, closing socket: {exc}")
        finally:
            self._smtp.close()


class SmtpTransport(MailTransport):
    """
    smtplib-based MailTransport.

    Example:
        transport = SmtpTransport()
        async with transport.connect("smtp.gmail.com", 587) as connection:
            await connection.authenticate(user, app_password)
            await connection.send(message)
    """

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None):
        self._ssl_context = ssl_context or ssl.create_default_context()

    @asynccontextmanager
    async def connect(
        self,
        host: str,
        port: int,
        timeout: float = SMTP_TIMEOUT_SECONDS,
    ) -> AsyncIterator[SmtpConnection]:
        connection = SmtpConnection(host, port, timeout)
        try:
            await connection.run(
                f"connecting to {host}:{port}", self._open, connection, host, port, timeout
            )
            yield connection
        finally:
            await connection.close()

    def _open(self, connection: SmtpConnection, host: str, port: int, timeout: float) -> None:
        # Attached before connecting so the greeting can be aborted too
        if port == IMPLICIT_TLS_PORT:
            smtp = smtplib.SMTP_SSL(timeout=timeout, context=self._ssl_context)
        else:
            smtp = smtplib.SMTP(timeout=timeout)
        connection.attach(smtp)

        code, msg = smtp.connect(host, port)
        if code != 220:
            raise smtplib.SMTPConnectError(code, msg)

        if port != IMPLICIT_TLS_PORT:
            smtp.ehlo()
            # Raises SMTPNotSupportedError when the relay has no STARTTLS
            smtp.starttls(context=self._ssl_context)
            smtp.ehlo()


_mail_transport: Optional[SmtpTransport] = None


def get_mail_transport() -> SmtpTransport:
    """
    Get or create the global SMTP transport.

    Returns:
        SmtpTransport instance
    """
    global _mail_transport

    if _mail_transport is None:
        _mail_transport = SmtpTransport()

    return _mail_transport
