from functools import lru_cache
from typing import List, Optional
from pydantic import BaseModel
from dotenv import load_dotenv
import os

# load .env first thing
load_dotenv()


def _csv(value: str) -> List[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def _flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    jwt_secret: str
    access_token_expire_minutes: int = 120

    upload_dir: str = "uploads"
    max_file_size: int = 10 * 1024 * 1024
    min_file_size: int = 1024
    allowed_mime_types: List[str] = ["image/jpeg", "image/png", "image/webp", "image/gif"]
    allowed_extensions: List[str] = ["jpg", "jpeg", "png", "webp", "gif"]
    min_image_width: int = 50
    min_image_height: int = 50
    max_image_width: int = 4096
    max_image_height: int = 4096
    max_images_per_recipe: int = 10
    base_url: str = "http://localhost:8080"

    frontend_url: str = "http://localhost:5173"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: Optional[str] = None

    admin_login: Optional[str] = None
    admin_password: Optional[str] = None
    admin_email: Optional[str] = None


def load_settings() -> Settings:
    jwt_secret = os.getenv("JWT_SECRET")
    if jwt_secret is None:
        raise ValueError("JWT_SECRET environment variable not set")

    return Settings(
        jwt_secret=jwt_secret,
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120")),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        max_file_size=int(os.getenv("FILE_MAX_SIZE", str(10 * 1024 * 1024))),
        min_file_size=int(os.getenv("FILE_MIN_SIZE", "1024")),
        allowed_mime_types=_csv(
            os.getenv("FILE_ALLOWED_MIME_TYPES", "image/jpeg,image/png,image/webp,image/gif")
        ),
        allowed_extensions=_csv(os.getenv("FILE_ALLOWED_EXTENSIONS", "jpg,jpeg,png,webp,gif")),
        min_image_width=int(os.getenv("IMAGE_MIN_WIDTH", "50")),
        min_image_height=int(os.getenv("IMAGE_MIN_HEIGHT", "50")),
        max_image_width=int(os.getenv("IMAGE_MAX_WIDTH", "4096")),
        max_image_height=int(os.getenv("IMAGE_MAX_HEIGHT", "4096")),
        max_images_per_recipe=int(os.getenv("IMAGE_MAX_PER_RECIPE", "10")),
        base_url=os.getenv("BASE_URL", "http://localhost:8080"),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        mail_from=os.getenv("MAIL_FROM") or None,
        admin_login=os.getenv("ADMIN_LOGIN") or None,
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        admin_email=os.getenv("ADMIN_EMAIL") or None,
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


SQL_ECHO = _flag(os.getenv("SQL_ECHO", "false"))
