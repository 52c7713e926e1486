"""
Password hashing for staff accounts (bcrypt via passlib).
"""

from typing import Optional

from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    """Hash a plain-text password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a plain-text password against a stored hash.

    Accounts without a hash (customers) never verify.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def needs_rehash(hashed_password: str) -> bool:
    """True when the hash uses a deprecated scheme or outdated cost."""
    return pwd_context.needs_update(hashed_password)
