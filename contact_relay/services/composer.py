import re
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from contact_relay.config import Settings, settings as default_settings
from contact_relay.models.contact import ContactSubmission, EmailEnvelope
from contact_relay.utils.html import escape_html, nl2br

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

# values are escaped explicitly with escape_html in the templates; Jinja's own
# autoescape would encode the apostrophe differently
templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=False,
    undefined=StrictUndefined,
)
templates.filters["escape_html"] = escape_html
templates.filters["nl2br"] = nl2br

_LINE_BREAKS = re.compile(r"[\r\n]+")


def build_subject(name: str, settings: Settings = default_settings) -> str:
    # header values cannot carry line breaks
    name = _LINE_BREAKS.sub(" ", name)
    return f"[{settings.MAIL_SUBJECT_TAG}] Nouveau message de {escape_html(name)}"


def compose(submission: ContactSubmission, settings: Settings = default_settings) -> EmailEnvelope:
    """Turn a validated submission into the envelope sent to the site owner.

    Sender and recipient come from configuration only; the submitter's address
    is used as Reply-To.
    """
    ctx = {
        "site_label": settings.APP_NAME,
        "name": submission.name,
        "email": submission.email,
        "message": submission.message,
    }
    return EmailEnvelope(
        from_address=settings.sender_address,
        from_name=settings.MAIL_FROM_NAME,
        to_address=settings.recipient_address,
        reply_to=escape_html(submission.email),
        subject=build_subject(submission.name, settings),
        html=templates.get_template("email/contact.html").render(ctx),
        text=templates.get_template("email/contact.txt").render(ctx),
    )
