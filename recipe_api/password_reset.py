import logging
import uuid
from datetime import timedelta
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from .audit import audit_password_change, utcnow
from .auth import get_password_hash, get_user_by_login
from .celery_app import celery_app
from .errors import InvalidInputError, LimitExceededError, NotFoundError
from .models import PasswordResetToken, User

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = timedelta(hours=1)
MAX_REQUESTS_PER_HOUR = 3


async def get_valid_token(db: AsyncSession, token: str):
    result = await db.execute(
        select(PasswordResetToken).where(
            PasswordResetToken.token == token,
            PasswordResetToken.used.is_(False),
        )
    )
    return result.scalars().first()


async def request_password_reset(db: AsyncSession, email: str):
    """Issue a reset token and queue the e-mail; unknown addresses are ignored."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user is None:
        logger.info(f"Password reset requested for unknown e-mail: {email}")
        return None

    now = utcnow()
    recent = await db.execute(
        select(func.count(PasswordResetToken.id)).where(
            PasswordResetToken.user_login == user.login,
            PasswordResetToken.created_at > now - timedelta(hours=1),
        )
    )
    if recent.scalar_one() >= MAX_REQUESTS_PER_HOUR:
        logger.warning(f"Password reset rate limit reached for user: {user.login}")
        raise LimitExceededError(
            "Too many password reset requests. Try again in 1 hour.", status_code=429
        )

    # older tokens stop working but still count towards the hourly limit
    await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.user_login == user.login, PasswordResetToken.used.is_(False))
        .values(used=True)
    )
    reset_token = PasswordResetToken(
        token=str(uuid.uuid4()),
        user_login=user.login,
        expiry_date=now + TOKEN_LIFETIME,
        used=False,
        created_at=now,
    )
    db.add(reset_token)
    await db.commit()

    task = celery_app.send_task(
        "tasks.send_password_reset_email", args=[user.email, reset_token.token]
    )
    logger.info(f"Password reset e-mail queued for user {user.login}, task: {task.id}")
    return reset_token


async def validate_reset_token(db: AsyncSession, token: str) -> bool:
    reset_token = await get_valid_token(db, token)
    return reset_token is not None and not reset_token.is_expired(utcnow())


async def reset_password(db: AsyncSession, token: str, new_password: str):
    reset_token = await get_valid_token(db, token)
    if reset_token is None:
        raise InvalidInputError("Invalid or already used token")
    now = utcnow()
    if reset_token.is_expired(now):
        raise InvalidInputError("Token expired")

    user = await get_user_by_login(db, reset_token.user_login)
    if user is None:
        raise NotFoundError("User not found")

    user.password_hash = get_password_hash(new_password)
    user.password_changed_at = now
    user.password_changed_by = "RESET"
    reset_token.used = True
    await db.commit()

    audit_password_change(user.id, "RESET", "PASSWORD_RESET")
    logger.info(f"Password reset completed for user: {user.login}")
    return user
