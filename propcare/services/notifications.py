import logging
from dataclasses import dataclass

from propcare.core.config import get_settings
from propcare.schemas.invites import InviteRole
from propcare.services.email_service import send_invitation_email
from propcare.services.sms_service import send_invitation_sms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InviteCreated:
    """Outbound message describing a freshly created invite."""

    role: InviteRole
    organization_name: str
    accept_link: str
    email: str | None
    phone: str | None
    send_email: bool
    send_phone: bool


def deliver_invite(event: InviteCreated) -> None:
    """
    Deliver an invite over the requested channels.

    Runs after the response has been sent; failures are logged, never raised.
    The accept link is only logged in development.
    """
    if get_settings().app_env == "development":
        logger.info("Invite link (%s): %s", event.role.value, event.accept_link)

    if event.send_email and event.email:
        try:
            send_invitation_email(
                event.email, event.organization_name, event.role.value, event.accept_link
            )
        except Exception:
            logger.exception("Invite email delivery failed")

    if event.send_phone and event.phone:
        try:
            send_invitation_sms(event.phone, event.organization_name, event.accept_link)
        except Exception:
            logger.exception("Invite SMS delivery failed")
