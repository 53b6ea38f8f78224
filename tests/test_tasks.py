"""
Tests for the Celery worker task used by the queued deployment mode.
"""

from unittest.mock import Mock, patch

import pytest

from contact_relay import tasks
from contact_relay.errors import (
    ConfigError,
    RejectionReason,
    SubmissionRejected,
    TransportError,
    TransportFailure,
)

from conftest import StubSender

PAYLOAD = {"name": "Ana", "email": "a@b.com", "message": "hello\nworld"}


def test_task_is_configured_for_at_least_once_delivery():
    conf = tasks.celery_app.conf

    assert conf.task_acks_late is True
    assert conf.task_default_queue == "mailQueue"
    assert tasks.deliver_contact_message.max_retries == 5
    assert tasks.deliver_contact_message.autoretry_for == (tasks.MailError,)
    assert tasks.SubmissionRejected in tasks.deliver_contact_message.dont_autoretry_for


def test_deliver_composes_and_sends():
    sender = StubSender()

    with patch.object(tasks, "get_worker_sender", return_value=sender):
        message_id = tasks.deliver_contact_message.run(PAYLOAD)

    assert message_id == "<stub-1@devom.fr>"
    assert len(sender.envelopes) == 1
    envelope = sender.envelopes[0]
    assert envelope.reply_to == "a@b.com"
    assert "hello<br>world" in envelope.html


def test_delivery_failure_is_raised_for_retry():
    sender = StubSender(error=TransportError(TransportFailure.TIMEOUT, "Timed out connecting"))

    with patch.object(tasks, "get_worker_sender", return_value=sender):
        with pytest.raises(TransportError):
            tasks.deliver_contact_message.run(PAYLOAD)


def test_config_error_is_raised():
    with patch.object(tasks, "get_worker_sender", side_effect=ConfigError("MAIL_FROM is required")):
        with pytest.raises(ConfigError):
            tasks.deliver_contact_message.run(PAYLOAD)


@pytest.mark.parametrize(
    "payload, reason",
    [
        ({}, RejectionReason.MISSING_FIELD),
        ({"name": "Ana", "email": "a@b.com"}, RejectionReason.MISSING_FIELD),
        ({**PAYLOAD, "message": "x" * 5001}, RejectionReason.MESSAGE_TOO_LONG),
    ],
)
def test_malformed_payload_fails_without_sending(payload, reason):
    sender = StubSender()

    with patch.object(tasks, "get_worker_sender", return_value=sender):
        with pytest.raises(SubmissionRejected) as exc_info:
            tasks.deliver_contact_message.run(payload)

    assert exc_info.value.reason is reason
    assert sender.envelopes == []
    assert not isinstance(exc_info.value, tasks.MailError)


def test_enqueue_passes_raw_payload():
    with patch.object(
        tasks.deliver_contact_message, "apply_async", return_value=Mock(id="job-42")
    ) as mock_apply:
        job_id = tasks.enqueue_contact_message(PAYLOAD)

    assert job_id == "job-42"
    mock_apply.assert_called_once_with(args=[PAYLOAD], queue="mailQueue")


def test_worker_sender_is_never_queued():
    tasks.get_worker_sender.cache_clear()
    try:
        with patch("contact_relay.services.mailer.build_sender") as mock_build:
            tasks.get_worker_sender()
            tasks.get_worker_sender()
    finally:
        tasks.get_worker_sender.cache_clear()

    mock_build.assert_called_once_with(tasks.settings, queued=False)
