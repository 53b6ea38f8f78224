import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from contact_relay.deps import get_mail_sender
from contact_relay.errors import MailError
from contact_relay.services.mailer import MailSender

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mail"])


@router.get("/mail/verify")
@router.get("/smtp/verify")
async def mail_verify(sender: MailSender = Depends(get_mail_sender)):
    """Check that the configured sender can deliver right now."""
    try:
        await sender.verify()
    except MailError as exc:
        logger.warning("Mail verification failed: %s", exc.log_context())
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)
    return {"ok": True, "via": sender.via}
