"""
Email Service - Resend Integration
==================================

Sends account emails using the Resend API:
- Email address confirmation after sign up
- Password reset links

Setup:
1. Sign up at https://resend.com
2. Get API key
3. Set RESEND_API_KEY environment variable

Without RESEND_API_KEY nothing is sent and the link is logged instead,
which is enough for local development.
"""

import os
import logging
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def get_email_settings():
    # Read at call time so tests and deployments can change them
    return {
        "api_key": os.getenv("RESEND_API_KEY", ""),
        "from_email": os.getenv("FROM_EMAIL", "Trading Journal <onboarding@resend.dev>"),
        "base_url": os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
    }


EMAIL_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            line-height: 1.6;
            color: #333;
            max-width: 600px;
            margin: 0 auto;
            padding: 20px;
            background: #f5f5f5;
        }}
        .header {{
            background: linear-gradient(135deg, #2563eb 0%, #4f46e5 100%);
            border-radius: 12px;
            padding: 30px 20px;
            text-align: center;
        }}
        .content {{
            background: white;
            border-radius: 12px;
            padding: 30px;
            margin-top: 20px;
            box-shadow: 0 4px 12px rgba(0,0,0,0.1);
        }}
        .btn {{
            display: inline-block;
            padding: 14px 28px;
            background: linear-gradient(135deg, #2563eb 0%, #4f46e5 100%);
            color: white !important;
            text-decoration: none;
            border-radius: 10px;
            font-weight: bold;
            margin: 20px 0;
        }}
        .footer {{
            margin-top: 30px;
            padding-top: 20px;
            border-top: 1px solid #e5e7eb;
            font-size: 12px;
            color: #666;
            text-align: center;
        }}
    </style>
</head>
<body>
    <div class="header">
        <h1 style="color: white; margin: 0;">📈 Trading Journal</h1>
    </div>
    <div class="content">
        <h2 style="color: #2563eb;">{title}</h2>
        <p>{intro}</p>
        <div style="text-align: center;">
            <a href="{link}" class="btn">{button}</a>
        </div>
        <p style="font-size: 13px; color: #666;">Or paste this link into your browser:<br>{link}</p>
        <div class="footer">
            <p>If you didn't request this email, you can safely ignore it.</p>
        </div>
    </div>
</body>
</html>
"""


def send_email(to_email: str, subject: str, html_content: str, text_content: str) -> bool:
    """
    Send one email through Resend.

    Returns:
        True if sent successfully, False otherwise
    """
    settings = get_email_settings()
    if not settings["api_key"]:
        logger.warning(f"⚠️ RESEND_API_KEY not set - email to {to_email} not sent")
        return False

    try:
        response = requests.post(
            RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {settings['api_key']}",
                "Content-Type": "application/json"
            },
            json={
                "from": settings["from_email"],
                "to": [to_email],
                "subject": subject,
                "html": html_content,
                "text": text_content
            },
            timeout=10
        )
        if response.status_code in (200, 201):
            logger.info(f"✅ Email sent to {to_email}: {subject}")
            return True
        logger.error(f"❌ Failed to send email: {response.status_code} - {response.text}")
        return False
    except requests.RequestException as e:
        logger.error(f"❌ Error sending email: {e}")
        return False


def send_confirmation_email(to_email: str, token: str) -> bool:
    """
    Send the sign-up confirmation link.

    Args:
        to_email: New user's email address
        token: Raw confirmation token (only its digest is stored)
    """
    link = f"{get_email_settings()['base_url']}/api/auth/confirm?token={quote(token)}"
    if not get_email_settings()["api_key"]:
        logger.info(f"🔗 Confirmation link (for testing): {link}")

    html_content = EMAIL_TEMPLATE.format(
        title="Confirm your email",
        intro="Thanks for signing up! Confirm your email address to start journaling your trades.",
        link=link,
        button="Confirm Email",
    )
    text_content = f"""
Welcome to Trading Journal!

Confirm your email address:
{link}

If you didn't sign up, you can safely ignore this email.
    """
    return send_email(to_email, "Confirm your Trading Journal account", html_content, text_content)


def send_password_reset_email(to_email: str, token: str, ttl_minutes: int) -> bool:
    """
    Send a password reset link valid for ttl_minutes.
    """
    link = f"{get_email_settings()['base_url']}/reset-password?token={quote(token)}"
    if not get_email_settings()["api_key"]:
        logger.info(f"🔗 Password reset link (for testing): {link}")

    html_content = EMAIL_TEMPLATE.format(
        title="Reset your password",
        intro=f"We received a request to reset your password. The link expires in {ttl_minutes} minutes.",
        link=link,
        button="Reset Password",
    )
    text_content = f"""
Reset your Trading Journal password:
{link}

The link expires in {ttl_minutes} minutes.
If you didn't request a reset, you can safely ignore this email.
    """
    return send_email(to_email, "Reset your Trading Journal password", html_content, text_content)
