"""bcrypt password hashing."""

import bcrypt

from mahallu_api.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")


def default_password_hash() -> str:
    """Hash of the configured initial password for accounts created without one."""
    return hash_password(settings.DEFAULT_USER_PASSWORD.get_secret_value())
