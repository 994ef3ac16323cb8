from email.message import EmailMessage
import smtplib
from sqlalchemy import delete
from sqlalchemy.orm import Session
from recipe_api.audit import utcnow
from recipe_api.config import get_settings
from recipe_api.database import get_db_sync
from recipe_api.models import PasswordResetToken
from recipe_api.celery_app import celery_app
import logging

logger = logging.getLogger('celery')

RESET_EMAIL_SUBJECT = "Password recovery - Receita Secreta"
RESET_EMAIL_BODY = """Hello,

You asked to recover your password for Receita Secreta.

To choose a new password, open the link below:
{reset_url}

This link is valid for 1 hour.

If you did not ask for this, just ignore this e-mail.

Receita Secreta team
"""


def build_reset_email(recipient, reset_token, settings):
    reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password/{reset_token}"
    message = EmailMessage()
    message["Subject"] = RESET_EMAIL_SUBJECT
    message["From"] = settings.mail_from or settings.smtp_username or "no-reply@localhost"
    message["To"] = recipient
    message.set_content(RESET_EMAIL_BODY.format(reset_url=reset_url))
    return message


@celery_app.task(name='tasks.send_password_reset_email')
def send_password_reset_email(recipient, reset_token):
    logger.info(f"Starting send_password_reset_email task for {recipient}")
    settings = get_settings()
    message = build_reset_email(recipient, reset_token, settings)
    if not settings.smtp_host:
        logger.info(f"SMTP not configured, reset e-mail not sent:\n{message}")
        return {"recipient": recipient, "sent": False}
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as smtp:
            smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Task failed: {str(e)}")
        raise Exception(f"Failed to send password reset e-mail to {recipient}: {str(e)}")
    logger.info(f"Password reset e-mail sent to {recipient}")
    return {"recipient": recipient, "sent": True}


@celery_app.task(name='tasks.cleanup_expired_reset_tokens')
def cleanup_expired_reset_tokens():
    logger.info("Starting cleanup_expired_reset_tokens task")
    db: Session = next(get_db_sync())
    try:
        now = utcnow()
        result = db.execute(
            delete(PasswordResetToken).where(PasswordResetToken.expiry_date < now)
        )
        db.commit()
        logger.info(f"Removed {result.rowcount} expired password reset tokens")
        return {"deleted": result.rowcount, "run_at": now.isoformat()}
    except Exception as e:
        db.rollback()
        logger.error(f"Task failed: {str(e)}")
        raise Exception(f"Failed to clean up expired reset tokens: {str(e)}")
    finally:
        db.close()
