from enum import Enum


class RejectionReason(str, Enum):
    MISSING_FIELD = "missing_field"
    MESSAGE_TOO_LONG = "message_too_long"
    LIKELY_SPAM = "likely_spam"

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self]


REJECTION_MESSAGES = {
    RejectionReason.MISSING_FIELD: "Tous les champs sont requis.",
    RejectionReason.MESSAGE_TOO_LONG: "Message trop long.",
    RejectionReason.LIKELY_SPAM: "Message non valide.",
}


class TransportFailure(str, Enum):
    CONNECT_FAILED = "connect_failed"
    AUTH_FAILED = "auth_failed"
    TLS_FAILED = "tls_failed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class SubmissionRejected(ValueError):
    """A contact submission failed validation. Safe to describe to the caller."""

    def __init__(self, reason: RejectionReason):
        super().__init__(reason.message)
        self.reason = reason


class MailError(Exception):
    """Base class for server-side mail failures.

    ``detail`` and ``code`` are meant for the logs only; callers of the HTTP API
    get a generic message.
    """

    kind = "mail_error"

    def __init__(self, detail: str, code: int | str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.code = code

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"

    def log_context(self) -> dict:
        return {
            "name": type(self).__name__,
            "kind": self.kind,
            "message": self.detail,
            "code": self.code,
        }


class TransportError(MailError):
    def __init__(self, failure: TransportFailure, detail: str, code: int | str | None = None):
        super().__init__(detail, code)
        self.failure = failure

    @property
    def kind(self) -> str:
        return self.failure.value


class TransportUnavailable(TransportError):
    """The transport is in the failed state and is not being re-verified yet."""


class SendError(MailError):
    kind = "send_failed"


class ConfigError(MailError):
    kind = "config_error"
