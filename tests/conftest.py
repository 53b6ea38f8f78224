"""
Shared fixtures for the contact relay tests.
"""

import asyncio
import os
import tempfile

# Configure the environment before importing app modules
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="contact-relay-logs-"))
os.environ.setdefault("MAIL_FROM", "site@devom.fr")
os.environ.setdefault("MAIL_TO", "owner@devom.fr")

import pytest
from fastapi.testclient import TestClient

from contact_relay.config import Settings
from contact_relay.deps import get_mail_sender
from contact_relay.errors import MailError
from contact_relay.main import app
from contact_relay.services.mailer import MailSender


def make_settings(**overrides) -> Settings:
    values = {
        "MAIL_FROM": "site@devom.fr",
        "MAIL_TO": "owner@devom.fr",
        "MAIL_HOST": "smtp.example.com",
        "MAIL_PORT": 465,
        "MAIL_USER": "site@devom.fr",
        "MAIL_PASS": "secret",
        "MAIL_TRANSPORT": "auto",
        "RESEND_API_KEY": "",
        "BREVO_API_KEY": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class StubSender(MailSender):
    """Mail sender that records envelopes instead of delivering them."""

    via = "stub"

    def __init__(self, settings=None, error: MailError | None = None):
        super().__init__(settings or make_settings())
        self.error = error
        self.envelopes = []
        self.verify_calls = 0

    async def verify(self):
        self.verify_calls += 1
        if self.error:
            raise self.error

    async def send(self, envelope):
        self.envelopes.append(envelope)
        if self.error:
            raise self.error
        return f"<stub-{len(self.envelopes)}@devom.fr>"


class FakeServer:
    """Scripted SMTP endpoint used through TransportManager's transport factory.

    ``errors`` maps a port to the exception its verification raises.
    """

    def __init__(self, errors=None):
        self.errors = dict(errors or {})
        self.attempts = []
        self.sent = []
        self.send_error = None
        self.gate: asyncio.Event | None = None

    def factory(self, config, port, security):
        return FakeTransport(self, config.host, port, security)


class FakeTransport:
    def __init__(self, server, host, port, security):
        self.server = server
        self.host = host
        self.port = port
        self.security = security

    async def verify(self):
        self.server.attempts.append((self.port, self.security))
        if self.server.gate is not None:
            await self.server.gate.wait()
        error = self.server.errors.get(self.port)
        if error is not None:
            raise error

    async def send(self, message):
        if self.server.send_error is not None:
            raise self.server.send_error
        self.server.sent.append(message)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def stub_sender(settings):
    return StubSender(settings)


@pytest.fixture
def client(stub_sender):
    app.dependency_overrides[get_mail_sender] = lambda: stub_sender
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def fake_server():
    return FakeServer()
