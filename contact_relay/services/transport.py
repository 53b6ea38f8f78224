"""SMTP transport negotiation.

``TransportManager`` owns at most one verified ``SmtpTransport`` per process.
The first caller verifies the configured endpoint; when the configured port is
the implicit-TLS port and the failure looks like a TLS or connection problem,
a second attempt is made with STARTTLS on port 587. Whatever succeeds is cached
and reused by every later send. Concurrent first callers share one
verification attempt.
"""

import asyncio
import logging
import ssl
import time
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from enum import Enum
from typing import Callable

import aiosmtplib

from contact_relay.errors import SendError, TransportError, TransportFailure, TransportUnavailable
from contact_relay.models.contact import EmailEnvelope

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
STARTTLS_PORT = 587

CONNECTION_TIMEOUT = 10.0
GREETING_TIMEOUT = 7.0
SOCKET_TIMEOUT = 15.0

FALLBACK_FAILURES = frozenset(
    {TransportFailure.TLS_FAILED, TransportFailure.CONNECT_FAILED, TransportFailure.TIMEOUT}
)

_TIMEOUT_MARKERS = ("timeout", "timed out")
_TLS_MARKERS = (
    "before secure tls connection was established",
    "certificate",
    "self signed",
    "self-signed",
    "ssl",
    "starttls",
)
_CONNECT_MARKERS = (
    "econnection",
    "econnrefused",
    "econnreset",
    "connection refused",
    "connection reset",
    "error connecting",
    "connection lost",
    "unexpected eof",
)
_AUTH_CODES = (530, 534, 535)


class SecurityMode(str, Enum):
    IMPLICIT_TLS = "implicit_tls"
    STARTTLS = "starttls"


class TransportState(str, Enum):
    UNINITIALIZED = "uninitialized"
    VERIFYING = "verifying"
    READY = "ready"
    FAILED = "failed"


def security_for_port(port: int) -> SecurityMode:
    return SecurityMode.IMPLICIT_TLS if port == IMPLICIT_TLS_PORT else SecurityMode.STARTTLS


def describe_error(exc: BaseException) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message or type(exc).__name__


def classify_transport_error(exc: BaseException) -> TransportFailure:
    """Map a raw connection/verification error to a TransportFailure."""
    if isinstance(exc, (TimeoutError, aiosmtplib.SMTPTimeoutError)):
        return TransportFailure.TIMEOUT
    if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
        return TransportFailure.AUTH_FAILED
    if isinstance(exc, ssl.SSLError):
        return TransportFailure.TLS_FAILED

    text = describe_error(exc).lower()
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return TransportFailure.TIMEOUT
    if any(marker in text for marker in _TLS_MARKERS):
        return TransportFailure.TLS_FAILED
    if any(marker in text for marker in _CONNECT_MARKERS):
        return TransportFailure.CONNECT_FAILED
    if getattr(exc, "code", None) in _AUTH_CODES or "auth" in text:
        return TransportFailure.AUTH_FAILED
    if isinstance(exc, (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected, OSError)):
        return TransportFailure.CONNECT_FAILED
    return TransportFailure.UNKNOWN


@dataclass(frozen=True)
class TransportConfig:
    host: str
    port: int
    username: str = ""
    password: str = field(default="", repr=False)
    connection_timeout: float = CONNECTION_TIMEOUT
    greeting_timeout: float = GREETING_TIMEOUT
    socket_timeout: float = SOCKET_TIMEOUT

    @classmethod
    def from_settings(cls, settings) -> "TransportConfig":
        return cls(
            host=settings.MAIL_HOST,
            port=settings.MAIL_PORT,
            username=settings.MAIL_USER,
            password=settings.MAIL_PASS,
        )


@dataclass(frozen=True)
class SmtpTransport:
    """A verified endpoint. Each verify/send opens its own SMTP session."""

    host: str
    port: int
    security: SecurityMode
    username: str = ""
    password: str = field(default="", repr=False)
    connection_timeout: float = CONNECTION_TIMEOUT
    greeting_timeout: float = GREETING_TIMEOUT
    socket_timeout: float = SOCKET_TIMEOUT

    @classmethod
    def from_config(cls, config: TransportConfig, port: int, security: SecurityMode) -> "SmtpTransport":
        return cls(
            host=config.host,
            port=port,
            security=security,
            username=config.username,
            password=config.password,
            connection_timeout=config.connection_timeout,
            greeting_timeout=config.greeting_timeout,
            socket_timeout=config.socket_timeout,
        )

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        return context

    async def _open(self) -> aiosmtplib.SMTP:
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.security is SecurityMode.IMPLICIT_TLS,
            start_tls=False,
            tls_context=self._tls_context(),
        )
        # connection timeout covers the TCP connect and the server banner
        await smtp.connect(timeout=self.connection_timeout)
        smtp.timeout = self.socket_timeout
        try:
            async with asyncio.timeout(self.greeting_timeout):
                await smtp.ehlo()
                if self.security is SecurityMode.STARTTLS:
                    await smtp.starttls()
                if self.username and self.password:
                    await smtp.login(self.username, self.password)
        except BaseException:
            smtp.close()
            raise
        return smtp

    async def _close(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.quit()
        except aiosmtplib.SMTPException:
            smtp.close()

    async def verify(self) -> None:
        smtp = await self._open()
        await self._close(smtp)

    async def send(self, message: EmailMessage) -> None:
        smtp = await self._open()
        try:
            await smtp.send_message(message)
        finally:
            await self._close(smtp)


def build_message(envelope: EmailEnvelope) -> EmailMessage:
    domain = envelope.from_address.rpartition("@")[2] or None
    message = EmailMessage()
    try:
        message["From"] = formataddr((envelope.from_name, envelope.from_address))
        message["To"] = envelope.to_address
        message["Reply-To"] = envelope.reply_to
        message["Subject"] = envelope.subject
    except ValueError as exc:
        raise SendError(f"invalid header value: {exc}") from exc
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = make_msgid(domain=domain)
    message.set_content(envelope.text or "")
    message.add_alternative(envelope.html, subtype="html")
    return message


TransportFactory = Callable[[TransportConfig, int, SecurityMode], SmtpTransport]


class TransportManager:
    def __init__(
        self,
        config: TransportConfig,
        *,
        fallback: bool = True,
        retry_cooldown: float | None = None,
        transport_factory: TransportFactory = SmtpTransport.from_config,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.fallback = fallback
        self.retry_cooldown = retry_cooldown
        self._factory = transport_factory
        self._clock = clock
        self._handle: SmtpTransport | None = None
        self._pending: asyncio.Task | None = None
        self._failure: TransportError | None = None
        self._failed_at: float | None = None

    @property
    def state(self) -> TransportState:
        if self._handle is not None:
            return TransportState.READY
        if self._pending is not None:
            return TransportState.VERIFYING
        if self._failure is not None:
            return TransportState.FAILED
        return TransportState.UNINITIALIZED

    async def get_transport(self) -> SmtpTransport:
        if self._handle is not None:
            return self._handle
        if self._pending is None:
            self._check_cooldown()
            self._pending = asyncio.ensure_future(self._establish())
            self._pending.add_done_callback(_consume_result)
        # shield: a cancelled caller must not abort the attempt others wait on
        return await asyncio.shield(self._pending)

    async def send(self, envelope: EmailEnvelope) -> str:
        transport = await self.get_transport()
        message = build_message(envelope)
        try:
            await transport.send(message)
        except (
            aiosmtplib.SMTPRecipientsRefused,
            aiosmtplib.SMTPRecipientRefused,
            aiosmtplib.SMTPSenderRefused,
            aiosmtplib.SMTPDataError,
        ) as exc:
            raise SendError(describe_error(exc), code=getattr(exc, "code", None)) from exc
        except Exception as exc:
            raise TransportError(
                classify_transport_error(exc), describe_error(exc), code=getattr(exc, "code", None)
            ) from exc
        return message["Message-ID"]

    def _check_cooldown(self) -> None:
        if self._failure is None:
            return
        elapsed = self._clock() - self._failed_at
        if self.retry_cooldown is None or elapsed < self.retry_cooldown:
            raise TransportUnavailable(
                self._failure.failure,
                f"transport failed earlier: {self._failure.detail}",
                code=self._failure.code,
            ) from self._failure
        logger.info("Retry cooldown elapsed (%.0fs), verifying SMTP transport again", elapsed)

    def _candidate(self, port: int, security: SecurityMode) -> SmtpTransport:
        logger.info(
            "SMTP attempt host=%s port=%s security=%s", self.config.host, port, security.value
        )
        return self._factory(self.config, port, security)

    async def _establish(self) -> SmtpTransport:
        try:
            primary = self._candidate(self.config.port, security_for_port(self.config.port))
            try:
                await primary.verify()
            except Exception as exc:
                failure = classify_transport_error(exc)
                if not self._can_fall_back(primary, failure):
                    raise self._failed(exc, failure) from exc
                logger.warning(
                    "SMTP verification failed on port %s (%s), falling back to STARTTLS on %s",
                    primary.port,
                    failure.value,
                    STARTTLS_PORT,
                )
                fallback = self._candidate(STARTTLS_PORT, SecurityMode.STARTTLS)
                try:
                    await fallback.verify()
                except Exception as fallback_exc:
                    failure = classify_transport_error(fallback_exc)
                    raise self._failed(fallback_exc, failure) from fallback_exc
                return self._ready(fallback)
            return self._ready(primary)
        finally:
            self._pending = None

    def _can_fall_back(self, primary: SmtpTransport, failure: TransportFailure) -> bool:
        return (
            self.fallback
            and primary.port == IMPLICIT_TLS_PORT
            and failure in FALLBACK_FAILURES
        )

    def _ready(self, transport: SmtpTransport) -> SmtpTransport:
        logger.info("SMTP ready on port %s (%s)", transport.port, transport.security.value)
        self._handle = transport
        self._failure = None
        self._failed_at = None
        return transport

    def _failed(self, exc: Exception, failure: TransportFailure) -> TransportError:
        error = TransportError(failure, describe_error(exc), code=getattr(exc, "code", None))
        logger.error("SMTP transport unavailable: %s", error)
        self._failure = error
        self._failed_at = self._clock()
        return error


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
