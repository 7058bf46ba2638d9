import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Tuple

from app.mycelery.app import celery_app
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("auth.mail")

OTP_SUBJECTS = {
    "admin_login": "Admin login verification code",
    "password_reset": "Password reset code",
    "email_verification": "Verify your email address",
}

OTP_INTROS = {
    "admin_login": "Use this code to finish signing in to the admin console.",
    "password_reset": "You requested a password reset.",
    "email_verification": "Welcome! Confirm your email address to finish creating your account.",
}

CONFIRMATION_SUBJECTS = {
    "signup_success": "Your account is ready",
    "password_reset_success": "Your password was changed",
}


def render_otp_email(purpose: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Subject and HTML body for a one-time code message"""
    subject = f"{OTP_SUBJECTS.get(purpose, 'Verification code')} - {settings.APP_NAME}"
    body = f"""
    <html>
        <body>
            <h2>Verification code</h2>
            <p>{OTP_INTROS.get(purpose, '')}</p>
            <p>Your verification code is: <strong>{payload['code']}</strong></p>
            <p>This code expires in {payload.get('expires_in_minutes', settings.OTP_TTL_MINUTES)} minutes.</p>
            <p>If you did not request this code, ignore this email.</p>
            <hr>
            <p><small>{settings.APP_NAME} - please do not reply to this email</small></p>
        </body>
    </html>
    """
    return subject, body


def render_confirmation_email(kind: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"{CONFIRMATION_SUBJECTS.get(kind, 'Account update')} - {settings.APP_NAME}"
    name = payload.get("full_name") or payload.get("email", "")
    if kind == "signup_success":
        text = f"Hi {name}, your account <strong>{payload.get('username', '')}</strong> was created. You can now sign in."
    elif kind == "password_reset_success":
        text = f"Hi {name}, your password was reset. If this was not you, contact us right away."
    else:
        text = f"Hi {name}, your account was updated."
    body = f"""
    <html>
        <body>
            <p>{text}</p>
            <hr>
            <p><small>{settings.APP_NAME} - please do not reply to this email</small></p>
        </body>
    </html>
    """
    return subject, body


def deliver_email(to_email: str, subject: str, html_body: str) -> None:
    """Send one HTML message over SMTP with STARTTLS. Raises on any delivery error."""
    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        raise ValueError("SMTP credentials not configured")

    from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME
    msg = MIMEMultipart()
    msg['From'] = f"{settings.SMTP_FROM_NAME} <{from_email}>"
    msg['To'] = to_email
    msg['Subject'] = subject
    msg.attach(MIMEText(html_body, 'html'))

    with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SEC) as server:
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(from_email, to_email, msg.as_string())


def deliver_email_local(to_email: str, subject: str, html_body: str) -> None:
    """Simula envio de e-mail localmente (para desenvolvimento)"""
    logger.info(f"=== EMAIL SIMULADO === to={to_email} subject={subject!r}")
    logger.debug(html_body)


@celery_app.task(name="send_confirmation_email", max_retries=3)
def send_confirmation_email(email: str, kind: str, payload: Dict[str, Any]):
    """Post-success notice (signup completed, password changed); never blocks the flow"""
    subject, body = render_confirmation_email(kind, payload)
    try:
        if settings.SMTP_USERNAME:
            deliver_email(email, subject, body)
        else:
            deliver_email_local(email, subject, body)
        return {"sent": True}
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Erro ao enviar email de confirmação ({kind}): {e}")
        # Backoff exponencial: a cada falha o tempo de espera dobra
        raise send_confirmation_email.retry(exc=e, countdown=2 ** send_confirmation_email.request.retries)


@celery_app.task(name="purge_expired_auth_records")
def purge_expired_auth_records():
    """Store-level TTL janitor for OTPs, staged signups and failed-attempt counters"""
    from app.services.janitor import run_purge

    counts = asyncio.run(run_purge())
    logger.info(f"Purged expired auth records: {counts}")
    return counts
