"""
Send trip invitation emails via Brevo using BREVO_API_KEY.
Delivery problems are reported back, never raised: a failed email must not
undo an invitation that is already stored and redeemable by link.
"""
from typing import Optional
from pydantic import BaseModel
import html
import logging
import httpx
from travelnest.core.config import settings

logger = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"


class EmailResult(BaseModel):
    success: bool
    error: Optional[str] = None


def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    *,
    to_name: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> EmailResult:
    """
    Send a single transactional email using Brevo API with BREVO_API_KEY.
    metadata is forwarded as Brevo tags/params for tracking.
    """
    api_key = (settings.BREVO_API_KEY or "").strip()
    if not api_key:
        logger.warning(f"[MAIL] BREVO_API_KEY not set; not sending '{subject}' to {to_email}")
        return EmailResult(success=False, error="Email delivery is not configured")

    payload = {
        "sender": {
            "name": settings.MAIL_SENDER_NAME,
            "email": settings.MAIL_SENDER_EMAIL,
        },
        "to": [{"email": to_email.strip().lower(), "name": (to_name or "").strip() or None}],
        "subject": subject,
        "htmlContent": html_content,
    }
    if metadata:
        payload["params"] = {k: str(v) for k, v in metadata.items()}

    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "api-key": api_key,
    }
    try:
        resp = httpx.post(BREVO_SEND_URL, headers=headers, json=payload, timeout=15.0)
    except httpx.HTTPError as e:
        return EmailResult(success=False, error=f"Email provider unreachable: {e}")
    if resp.status_code not in (200, 201, 202):
        return EmailResult(success=False, error=f"Email provider returned {resp.status_code}: {resp.text[:200]}")
    return EmailResult(success=True)


def send_invitation_email(
    to_email: str,
    inviter_name: str,
    trip_title: str,
    invitation_link: str,
    role: str,
    is_new_user: bool,
    metadata: Optional[dict] = None,
) -> EmailResult:
    """Send email inviting someone to a trip (new or existing user)."""
    if is_new_user:
        subject = f'{inviter_name} invited you to join "{trip_title}" on TravelNest'
        body_extra = "<p>Create your TravelNest account with this email address, then accept the invitation.</p>"
    else:
        subject = f'{inviter_name} invited you to join "{trip_title}"'
        body_extra = "<p>You already have an account. Click the link below to accept and join the trip.</p>"
    role_text = "Editor" if role == "editor" else "Viewer"
    content = f"""
    <p>{html.escape(inviter_name)} has invited you to join <strong>{html.escape(trip_title)}</strong> as <strong>{role_text}</strong>.</p>
    {body_extra}
    <p>This link expires in {settings.INVITATION_EXPIRES_DAYS} days.</p>
    <p><a href="{invitation_link}">{invitation_link}</a></p>
    <p>If you didn't expect this email, you can ignore it.</p>
    """
    return send_email(to_email, subject, content, metadata=metadata)
