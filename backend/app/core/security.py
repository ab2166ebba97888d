import re

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
_SPECIAL_CHARS_RE = re.compile(r"[^A-Za-z0-9]")

ADMIN_PASSWORD_MIN_LENGTH = 10


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> tuple[bool, str | None]:
    """Check a password; the second item is a fresh hash when the stored one is outdated."""
    return _pwd_context.verify_and_update(password, password_hash)


def admin_password_problems(password: str, *, min_length: int = ADMIN_PASSWORD_MIN_LENGTH) -> list[str]:
    problems: list[str] = []
    if len(password) < min_length:
        problems.append(f"password must be at least {min_length} characters")
    if not any(ch.isalpha() for ch in password):
        problems.append("password must contain a letter")
    if not any(ch.isdigit() for ch in password):
        problems.append("password must contain a digit")
    if not _SPECIAL_CHARS_RE.search(password):
        problems.append("password must contain a special character")
    return problems
