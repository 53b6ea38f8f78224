from typing import Any

from pydantic import BaseModel, ConfigDict


def _as_field(value: Any) -> str:
    if not value:
        return ""
    return value if isinstance(value, str) else str(value)


class ContactSubmission(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""
    message: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "ContactSubmission":
        """Build a submission from a decoded request body.

        Anything that is not a JSON object is treated as an empty form, and
        falsy values count as missing.
        """
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            name=_as_field(payload.get("name")),
            email=_as_field(payload.get("email")),
            message=_as_field(payload.get("message")),
        )


class EmailEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_address: str
    from_name: str = ""
    to_address: str
    reply_to: str
    subject: str
    html: str
    text: str | None = None
