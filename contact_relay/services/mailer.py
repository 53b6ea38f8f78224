import logging
from typing import Callable

import httpx
from email_validator import EmailNotValidError, validate_email
from starlette.concurrency import run_in_threadpool

from contact_relay.config import Settings
from contact_relay.errors import (
    ConfigError,
    SendError,
    TransportError,
    TransportFailure,
)
from contact_relay.models.contact import ContactSubmission, EmailEnvelope
from contact_relay.services.composer import compose
from contact_relay.services.transport import (
    IMPLICIT_TLS_PORT,
    TransportConfig,
    TransportManager,
    classify_transport_error,
    describe_error,
)
from contact_relay.utils.brevo import send_brevo_email
from contact_relay.utils.resend import send_resend_email

logger = logging.getLogger(__name__)

API_PROVIDERS = ("resend", "brevo")


class MailSender:
    """Delivery strategy chosen once at startup.

    ``dispatch`` is what the contact endpoint calls; the synchronous senders
    compose the envelope and ``send`` it, the queued sender hands the raw
    submission to the worker instead.
    """

    via = "mail"

    def __init__(self, settings: Settings):
        self.settings = settings

    async def verify(self) -> None:
        raise NotImplementedError

    async def send(self, envelope: EmailEnvelope) -> str:
        raise NotImplementedError

    async def dispatch(self, submission: ContactSubmission) -> str:
        return await self.send(compose(submission, self.settings))


class SmtpSender(MailSender):
    via = "smtp"

    def __init__(self, settings: Settings, manager: TransportManager):
        super().__init__(settings)
        self.manager = manager

    async def verify(self) -> None:
        transport = await self.manager.get_transport()
        try:
            await transport.verify()
        except Exception as exc:
            raise TransportError(classify_transport_error(exc), describe_error(exc)) from exc

    async def send(self, envelope: EmailEnvelope) -> str:
        message_id = await self.manager.send(envelope)
        logger.info("Message sent via SMTP: %s", message_id)
        return message_id


class ApiSender(MailSender):
    """Transactional email API (Resend or Brevo) over HTTPS."""

    def __init__(self, settings: Settings, provider: str, client: httpx.AsyncClient | None = None):
        if provider not in API_PROVIDERS:
            raise ConfigError(f"unknown email API provider {provider!r}")
        super().__init__(settings)
        self.provider = provider
        self.client = client

    @property
    def via(self) -> str:
        return self.provider

    @property
    def api_key(self) -> str:
        if self.provider == "resend":
            return self.settings.RESEND_API_KEY
        return self.settings.BREVO_API_KEY

    def _check_config(self) -> None:
        if not self.api_key:
            raise ConfigError(f"{self.provider.upper()}_API_KEY is not configured")
        if not self.settings.MAIL_FROM:
            raise ConfigError(f"MAIL_FROM is required to send via {self.provider}")

    async def verify(self) -> None:
        self._check_config()

    async def send(self, envelope: EmailEnvelope) -> str:
        self._check_config()
        try:
            if self.provider == "resend":
                message_id = await send_resend_email(
                    envelope, self.api_key, self.settings.RESEND_ENDPOINT, client=self.client
                )
            else:
                message_id = await send_brevo_email(
                    envelope, self.api_key, self.settings.BREVO_ENDPOINT, client=self.client
                )
        except httpx.HTTPStatusError as exc:
            raise SendError(_api_error_detail(exc.response), code=exc.response.status_code) from exc
        except httpx.TimeoutException as exc:
            raise TransportError(TransportFailure.TIMEOUT, describe_error(exc)) from exc
        except httpx.RequestError as exc:
            raise TransportError(classify_transport_error(exc), describe_error(exc)) from exc
        except ValueError as exc:
            # accepted by the provider but the answer could not be read
            raise SendError(f"unreadable {self.provider} response: {describe_error(exc)}") from exc
        logger.info("Message sent via %s: %s", self.provider, message_id or "OK")
        return message_id


def _api_error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text


class QueuedSender(MailSender):
    via = "queue"

    def __init__(
        self,
        settings: Settings,
        enqueue: Callable[[dict], str],
        ping: Callable[[], None],
    ):
        super().__init__(settings)
        self._enqueue = enqueue
        self._ping = ping

    async def verify(self) -> None:
        try:
            await run_in_threadpool(self._ping)
        except Exception as exc:
            raise TransportError(classify_transport_error(exc), describe_error(exc)) from exc

    async def dispatch(self, submission: ContactSubmission) -> str:
        try:
            job_id = await run_in_threadpool(self._enqueue, submission.model_dump())
        except Exception as exc:
            raise TransportError(classify_transport_error(exc), describe_error(exc)) from exc
        logger.info("Contact message queued as job %s", job_id)
        return job_id


def _check_address(label: str, address: str) -> None:
    if not address:
        raise ConfigError(f"{label} address is not configured")
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ConfigError(f"{label} address {address!r} is invalid: {exc}") from exc


def check_mail_settings(settings: Settings) -> None:
    transport = settings.transport
    if transport in API_PROVIDERS:
        key = settings.RESEND_API_KEY if transport == "resend" else settings.BREVO_API_KEY
        if not key:
            raise ConfigError(f"{transport.upper()}_API_KEY is not configured")
        _check_address("MAIL_FROM", settings.MAIL_FROM)
    else:
        if not settings.MAIL_HOST:
            raise ConfigError("MAIL_HOST is not configured")
        _check_address("sender", settings.sender_address)
    _check_address("recipient", settings.recipient_address)


def log_mail_config(settings: Settings) -> None:
    logger.info(
        "Mail config: transport=%s queued=%s from=%s to=%s smtp_host=%s smtp_port=%s "
        "implicit_tls=%s user_present=%s pass_present=%s",
        settings.transport,
        settings.MAIL_QUEUE_ENABLED,
        settings.sender_address,
        settings.recipient_address,
        settings.MAIL_HOST,
        settings.MAIL_PORT,
        settings.MAIL_PORT == IMPLICIT_TLS_PORT,
        bool(settings.MAIL_USER),
        bool(settings.MAIL_PASS),
    )


def build_delivery_sender(settings: Settings) -> MailSender:
    """The sender that actually talks to a mail server or API."""
    transport = settings.transport
    if transport in API_PROVIDERS:
        return ApiSender(settings, transport)
    manager = TransportManager(
        TransportConfig.from_settings(settings),
        fallback=transport == "smtp_fallback",
        retry_cooldown=settings.MAIL_RETRY_COOLDOWN,
    )
    return SmtpSender(settings, manager)


def build_sender(settings: Settings, queued: bool | None = None) -> MailSender:
    """Validate the mail configuration and build the sender for this process.

    Raises ConfigError so a misconfigured deployment fails at startup rather
    than on the first contact request.
    """
    check_mail_settings(settings)
    if queued is None:
        queued = settings.MAIL_QUEUE_ENABLED
    if queued:
        from contact_relay.tasks import enqueue_contact_message, ping_broker

        return QueuedSender(settings, enqueue_contact_message, ping_broker)
    return build_delivery_sender(settings)
