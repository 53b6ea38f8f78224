import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from contact_relay.deps import get_mail_sender
from contact_relay.errors import MailError, SubmissionRejected
from contact_relay.models.contact import ContactSubmission
from contact_relay.services.mailer import MailSender
from contact_relay.services.validator import validate_submission

logger = logging.getLogger(__name__)

router = APIRouter(tags=["contact"])

SUCCESS_MESSAGE = "Message envoyé avec succès !"
FAILURE_MESSAGE = (
    "Une erreur est survenue lors de l'envoi de l'email. Veuillez réessayer plus tard."
)


async def read_submission(request: Request) -> ContactSubmission:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    return ContactSubmission.from_payload(payload)


@router.post("/contact")
async def contact_submit(request: Request, sender: MailSender = Depends(get_mail_sender)):
    submission = await read_submission(request)
    try:
        validate_submission(submission)
    except SubmissionRejected as exc:
        return JSONResponse({"message": exc.reason.message}, status_code=400)

    try:
        await sender.dispatch(submission)
    except MailError as exc:
        logger.error("Email delivery failed: %s", exc.log_context())
        return JSONResponse({"message": FAILURE_MESSAGE}, status_code=500)
    return {"message": SUCCESS_MESSAGE}
