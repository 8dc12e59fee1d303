import html
import logging
import smtplib
import ssl
from email.message import EmailMessage

from propcare.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

HOST = settings.smtp_host
PORT = settings.smtp_port
USER = settings.smtp_username
PWD = settings.smtp_password
MAIL_FROM = settings.mail_from

_ROLE_LABELS = {
    "org_admin": "an organization admin",
    "staff": "maintenance staff",
    "tenant": "a tenant",
}


def send_invitation_email(to_email: str, org_name: str, role: str, link: str) -> None:
    if not HOST or not MAIL_FROM:
        logger.info("SMTP not configured; skipping invite email")
        return

    role_label = _ROLE_LABELS.get(role, role)
    safe_org = html.escape(org_name)
    safe_link = html.escape(link, quote=True)
    msg = EmailMessage()
    msg["Subject"] = f"You're invited to join {org_name}"
    msg["From"] = MAIL_FROM
    msg["To"] = to_email
    msg.set_content(
        f"Hi,\n\n{org_name} has invited you to join as {role_label}. "
        f"Accept your invitation here: {link}\n\nThis link expires in 7 days.\n"
    )
    msg.add_alternative(
        f"""<p>Hi,</p>
            <p><b>{safe_org}</b> has invited you to join as {role_label}.</p>
            <p>Follow this link to continue: <a href=\"{safe_link}\">{safe_link}</a></p>
            <p>This link expires in 7 days. If you did not expect this email, you can safely ignore it.</p>""",
        subtype="html",
    )
    ctx = ssl.create_default_context()
    with smtplib.SMTP(HOST, PORT, timeout=20) as smtp:
        smtp.ehlo()
        smtp.starttls(context=ctx)
        smtp.ehlo()
        if USER and PWD:
            smtp.login(USER, PWD)
        smtp.send_message(msg)
