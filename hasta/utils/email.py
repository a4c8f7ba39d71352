import logging
from typing import Optional

import requests

from hasta.config import Settings

logger = logging.getLogger(__name__)

MAILGUN_API_BASE = "https://api.mailgun.net/v3"


def send_email(
    settings: Settings,
    to_email: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
) -> bool:
    """
    Send email via the Mailgun HTTP API.

    Never raises. Returns True on success, False on failure, so a
    notification can never break the business flow that triggered it.
    """
    if not settings.mailgun_api_key or not settings.mailgun_domain or not settings.email_from_address:
        logger.warning(
            "Mailgun not configured, email skipped | to=%s | subject=%s",
            to_email,
            subject,
        )
        return False

    if not to_email:
        logger.warning("Email skipped, no recipient | subject=%s", subject)
        return False

    data = {
        "from": f"{settings.email_from_name} <{settings.email_from_address}>",
        "to": to_email,
        "subject": subject,
        "html": html_content,
    }
    if text_content:
        data["text"] = text_content

    try:
        response = requests.post(
            f"{MAILGUN_API_BASE}/{settings.mailgun_domain}/messages",
            auth=("api", settings.mailgun_api_key),
            data=data,
            timeout=10,
        )

        if response.status_code != 200:
            logger.error(
                "Mailgun email failed | to=%s | status=%s | response=%s",
                to_email,
                response.status_code,
                response.text,
            )
            return False

        return True

    except requests.RequestException as e:
        logger.exception(
            "Mailgun email exception | to=%s | error=%s",
            to_email,
            str(e),
        )
        return False
