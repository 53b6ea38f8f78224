# contact_relay/tasks.py
"""
Celery worker for the queued deployment mode.

The web process enqueues the raw ``{name, email, message}`` payload; the
worker composes the email and sends it with the configured SMTP or API
sender. A mail failure is raised back to Celery so its retry/backoff policy
decides on redelivery.

Run with::

    celery -A contact_relay.tasks worker --loglevel=info
"""

import asyncio
import logging
from functools import lru_cache

from celery import Celery
from celery.signals import task_failure

from contact_relay.config import settings
from contact_relay.errors import ConfigError, MailError, SubmissionRejected
from contact_relay.models.contact import ContactSubmission
from contact_relay.services.validator import validate_submission

logger = logging.getLogger(__name__)

MAIL_QUEUE = "mailQueue"

celery_app = Celery("contact_relay")
celery_app.conf.update({
    "broker_url": settings.broker_url,
    "task_serializer": "json",
    "accept_content": ["json"],
    "task_ignore_result": True,
    "task_default_queue": MAIL_QUEUE,
    "timezone": "UTC",
    "enable_utc": True,
    # acknowledge only once the email went out
    "task_acks_late": True,
    "task_reject_on_worker_lost": True,
    "worker_prefetch_multiplier": 1,
})

_runner: asyncio.Runner | None = None


def run_async(coro):
    """Run a coroutine on this worker process's long-lived event loop."""
    global _runner
    if _runner is None:
        _runner = asyncio.Runner()
    return _runner.run(coro)


@lru_cache
def get_worker_sender():
    from contact_relay.services.mailer import build_sender

    return build_sender(settings, queued=False)


@celery_app.task(
    bind=True,
    name="contact_relay.deliver_contact_message",
    autoretry_for=(MailError,),
    dont_autoretry_for=(ConfigError, SubmissionRejected),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=5,
)
def deliver_contact_message(self, payload: dict) -> str:
    submission = ContactSubmission.from_payload(payload)
    try:
        validate_submission(submission)
    except SubmissionRejected as exc:
        logger.error("Rejected job %s: %s", self.request.id, exc.reason.value)
        raise
    sender = get_worker_sender()
    try:
        message_id = run_async(sender.dispatch(submission))
    except MailError as exc:
        logger.error("Failed to send email for job %s: %s", self.request.id, exc.log_context())
        raise
    logger.info("Email sent successfully for job %s (%s)", self.request.id, message_id)
    return message_id


def enqueue_contact_message(payload: dict) -> str:
    result = deliver_contact_message.apply_async(args=[payload], queue=MAIL_QUEUE)
    return result.id


def ping_broker() -> None:
    with celery_app.connection_for_write() as conn:
        conn.ensure_connection(max_retries=1)


@task_failure.connect(sender=deliver_contact_message)
def task_failure_handler(sender=None, task_id=None, exception=None, **kwargs):
    logger.error("Task %s [%s] gave up: %s", sender.name, task_id, exception)
