"""
Best-effort email notifications via SES.

Sending never raises: a failed send is logged and the triggering operation
carries on. Nothing is retried.
"""

import os
from html import escape
from typing import Any, Dict, Optional

import boto3

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_FROM_EMAIL = "noreply@awsugmdu.com"
DEFAULT_COMMUNITY_NAME = "AWS User Group MDU"


def _sender() -> str:
    return os.getenv("SES_FROM_EMAIL") or DEFAULT_FROM_EMAIL


def _signature() -> str:
    return f"{os.getenv('COMMUNITY_NAME') or DEFAULT_COMMUNITY_NAME} Team"


def send_email(to: str, subject: str, html_body: str, text_body: str) -> bool:
    """
    Send an email, swallowing and logging any failure.

    Returns:
        True if SES accepted the message
    """
    ses = boto3.client("ses", endpoint_url=os.getenv("SES_ENDPOINT"))
    try:
        ses.send_email(
            Source=_sender(),
            Destination={"ToAddresses": [to]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Html": {"Data": html_body, "Charset": "UTF-8"},
                    "Text": {"Data": text_body, "Charset": "UTF-8"},
                },
            },
        )
    except Exception as e:
        logger.error("Failed to send email", to=to, subject=subject, error=str(e))
        return False

    logger.info("Email sent", to=to, subject=subject)
    return True


def send_redemption_code_email(user: Optional[Dict[str, Any]], item_name: str, points: Any, code: str) -> bool:
    """Email a redeemed virtual item's code to the user, if they have an email."""
    if not user or not user.get("email"):
        logger.info("No email on file, skipping code email", user_id=(user or {}).get("userId"))
        return False

    subject = f"Your {item_name} Code"
    html_body = f"""
<h2>Congratulations! 🎉</h2>
<p>You have successfully redeemed <strong>{escape(item_name)}</strong> for {points} points.</p>
<p>Here is your code:</p>
<div style="background-color: #f4f4f4; padding: 15px; border-radius: 5px; font-family: monospace; font-size: 18px; text-align: center; margin: 20px 0;">
  <strong>{escape(code)}</strong>
</div>
<p>Thank you for being part of our community!</p>
<p>Best regards,<br>{escape(_signature())}</p>
"""
    text_body = f"""Congratulations!

You have successfully redeemed {item_name} for {points} points.

Your code: {code}

Thank you for being part of our community!

Best regards,
{_signature()}
"""
    return send_email(str(user["email"]), subject, html_body, text_body)


def send_order_completed_email(
    user: Optional[Dict[str, Any]], item_name: str, admin_notes: Optional[str] = None
) -> bool:
    """Email the user that their physical order has been completed."""
    if not user or not user.get("email"):
        logger.info("No email on file, skipping completion email", user_id=(user or {}).get("userId"))
        return False

    notes_html = ""
    notes_text = ""
    if admin_notes:
        notes_html = f"""
<div style="background-color: #f4f4f4; padding: 15px; border-radius: 5px; margin: 20px 0;">
  <strong>Admin Notes:</strong><br>
  {escape(admin_notes)}
</div>
"""
        notes_text = f"Admin Notes:\n{admin_notes}\n\n"

    subject = f"Your {item_name} Order is Complete"
    html_body = f"""
<h2>Order Completed! 🎉</h2>
<p>Your order for <strong>{escape(item_name)}</strong> has been processed and completed.</p>
{notes_html}
<p>Thank you for being part of our community!</p>
<p>Best regards,<br>{escape(_signature())}</p>
"""
    text_body = f"""Order Completed!

Your order for {item_name} has been processed and completed.

{notes_text}Thank you for being part of our community!

Best regards,
{_signature()}
"""
    return send_email(str(user["email"]), subject, html_body, text_body)
