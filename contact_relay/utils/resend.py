# contact_relay/utils/resend.py
import httpx

from contact_relay.models.contact import EmailEnvelope


def build_resend_payload(envelope: EmailEnvelope) -> dict:
    sender = envelope.from_address
    if envelope.from_name:
        sender = f"{envelope.from_name} <{envelope.from_address}>"
    payload = {
        "from": sender,
        "to": [envelope.to_address],
        "reply_to": envelope.reply_to,
        "subject": envelope.subject,
        "html": envelope.html,
    }
    if envelope.text:
        payload["text"] = envelope.text
    return payload


async def send_resend_email(
    envelope: EmailEnvelope,
    api_key: str,
    endpoint: str,
    client: httpx.AsyncClient | None = None,
) -> str:
    headers = {
        "accept": "application/json",
        "authorization": f"Bearer {api_key}",
        "content-type": "application/json",
    }
    payload = build_resend_payload(envelope)

    if client is None:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(endpoint, headers=headers, json=payload)
    else:
        response = await client.post(endpoint, headers=headers, json=payload)
    response.raise_for_status()
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"unexpected Resend response body: {response.text[:200]!r}")
    return body.get("id", "")
