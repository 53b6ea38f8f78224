import logging
import re

from contact_relay.errors import RejectionReason, SubmissionRejected
from contact_relay.models.contact import ContactSubmission

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000
MAX_LINKS = 3

_LINK_RE = re.compile(r"https?://", re.IGNORECASE)


def count_links(text: str) -> int:
    return len(_LINK_RE.findall(text))


def validate_submission(submission: ContactSubmission) -> None:
    """Raise SubmissionRejected when the submission must not be sent.

    The link count is a spam heuristic only; false positives are accepted.
    """
    if not submission.name or not submission.email or not submission.message:
        raise SubmissionRejected(RejectionReason.MISSING_FIELD)
    if len(submission.message) > MAX_MESSAGE_LENGTH:
        raise SubmissionRejected(RejectionReason.MESSAGE_TOO_LONG)
    if count_links(submission.message) > MAX_LINKS:
        logger.warning("Spam blocked: too many links from %s", submission.email)
        raise SubmissionRejected(RejectionReason.LIKELY_SPAM)
