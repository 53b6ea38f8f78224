# contact_relay/utils/brevo.py
import httpx

from contact_relay.models.contact import EmailEnvelope


def build_brevo_payload(envelope: EmailEnvelope) -> dict:
    payload = {
        "sender": {"name": envelope.from_name, "email": envelope.from_address},
        "to": [{"email": envelope.to_address}],
        "replyTo": {"email": envelope.reply_to},
        "subject": envelope.subject,
        "htmlContent": envelope.html,
    }
    if envelope.text:
        payload["textContent"] = envelope.text
    return payload


async def send_brevo_email(
    envelope: EmailEnvelope,
    api_key: str,
    endpoint: str,
    client: httpx.AsyncClient | None = None,
) -> str:
    headers = {
        "accept": "application/json",
        "api-key": api_key,
        "content-type": "application/json",
    }
    payload = build_brevo_payload(envelope)

    if client is None:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(endpoint, headers=headers, json=payload)
    else:
        response = await client.post(endpoint, headers=headers, json=payload)
    response.raise_for_status()
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"unexpected Brevo response body: {response.text[:200]!r}")
    return body.get("messageId", "")
