from __future__ import annotations

import html
import logging

import httpx

from votebot.platform.base import ErrorReporter

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


async def send_error_email(
    *,
    to: list[str],
    subject: str,
    text: str,
    html_body: str | None = None,
    resend_api_key: str | None,
    email_from: str,
    http_timeout_seconds: float,
) -> bool:
    """Send an error report through Resend.

    Returns True if sent successfully (or logged when email is disabled), False on failure.
    """
    if not to:
        return False
    if not resend_api_key:
        logger.info("Error report for %s: %s (email sending disabled, no RESEND_API_KEY)", ", ".join(to), subject)
        return True

    payload: dict[str, object] = {
        "from": email_from,
        "to": to,
        "subject": subject,
        "text": text,
    }
    if html_body is not None:
        payload["html"] = html_body

    try:
        async with httpx.AsyncClient(timeout=http_timeout_seconds) as client:
            response = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {resend_api_key}",
                    "Content-Type": "application/json",
                },
            )
        if response.status_code >= 400:
            logger.error("Resend API error %d: %s", response.status_code, response.text)
            return False
        logger.info("Error report sent: %s (Resend ID: %s)", subject, _resend_id(response))
        return True
    except httpx.HTTPError:
        logger.exception("Failed to send error report: %s", subject)
        return False


def _resend_id(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "unknown"
    return str(payload.get("id", "unknown")) if isinstance(payload, dict) else "unknown"


class EmailErrorReporter(ErrorReporter):
    def __init__(self, *, resend_api_key: str | None, email_from: str, http_timeout_seconds: float) -> None:
        self._resend_api_key = resend_api_key
        self._email_from = email_from
        self._timeout = http_timeout_seconds

    async def report(self, subject: str, body: str, *, recipients: list[str]) -> bool:
        return await send_error_email(
            to=recipients,
            subject=subject,
            text=body,
            html_body=f"<html><body><pre>{html.escape(body)}</pre></body></html>",
            resend_api_key=self._resend_api_key,
            email_from=self._email_from,
            http_timeout_seconds=self._timeout,
        )
