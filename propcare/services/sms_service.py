import logging

import httpx

from propcare.core.config import get_settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def send_sms(to_number: str, body: str) -> None:
    settings = get_settings()
    sid = settings.twilio_account_sid
    token = settings.twilio_auth_token
    from_number = settings.twilio_from_number
    if not sid or not token or not from_number:
        logger.info("Twilio not configured; skipping SMS")
        return

    with httpx.Client(timeout=15) as client:
        resp = client.post(
            TWILIO_MESSAGES_URL.format(sid=sid),
            data={"To": to_number, "From": from_number, "Body": body},
            auth=(sid, token),
        )
    resp.raise_for_status()


def send_invitation_sms(to_number: str, org_name: str, link: str) -> None:
    send_sms(
        to_number,
        f"{org_name} invited you to join. Accept within 7 days: {link}",
    )
