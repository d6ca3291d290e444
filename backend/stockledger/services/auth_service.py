# Overview: Credential hashing for accounts seeded by this service.

"""
Login itself is handled outside this service. What remains here is hashing
the credential of the seeded administrator so it is never stored in clear.
"""

import bcrypt
import re

from sqlalchemy import select

from ..extensions import db
from ..models import User
from .concurrency import unit_of_work


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter and one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def ensure_admin_user(username: str, password: str, name: str = "Administrator") -> bool:
    """Create the administrator account when no user exists yet. Returns True if created."""
    password_hash = hash_password(password)
    with unit_of_work():
        if db.session.execute(select(User.id).limit(1)).first() is not None:
            return False
        db.session.add(User(id="1", name=name, username=username, password=password_hash, role="Admin"))
    return True
