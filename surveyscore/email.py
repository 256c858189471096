import logging
from email.message import EmailMessage

import aiosmtplib

from surveyscore.config import settings

logger = logging.getLogger(__name__)


def build_message(to_email: str, subject: str, html_content: str, from_email: str, from_name: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f"{from_name} <{from_email}>"
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(html_content, subtype="html")
    return message


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    host: str = None,
    port: int = None,
    username: str = None,
    password: str = None,
    use_tls: bool = None,
    from_email: str = None,
    from_name: str = None,
):
    # Fallback to configured defaults
    host = host or settings.smtp_host
    port = int(port or settings.smtp_port)
    username = username or settings.smtp_username
    password = password or settings.smtp_password
    use_tls = use_tls if use_tls is not None else settings.smtp_use_tls
    from_email = from_email or settings.smtp_from_email
    from_name = from_name or settings.smtp_from_name

    message = build_message(to_email, subject, html_content, from_email, from_name)

    # Port 465 is implicit TLS, anything else upgrades with STARTTLS when enabled
    is_ssl_port = (port == 465)

    try:
        smtp_client = aiosmtplib.SMTP(
            hostname=host,
            port=port,
            use_tls=is_ssl_port,
            start_tls=not is_ssl_port and use_tls,
        )

        async with smtp_client:
            if username:
                await smtp_client.login(username, password)
            await smtp_client.send_message(message)

        logger.info("Email sent to %s", to_email)
    except Exception:
        logger.exception("SMTP error sending to %s", to_email)
        raise
