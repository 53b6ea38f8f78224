from fastapi import Request

from contact_relay.services.mailer import MailSender


def get_mail_sender(request: Request) -> MailSender:
    return request.app.state.mail_sender
