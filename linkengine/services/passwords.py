"""
Password gate support for locked links.
"""

import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


class PasswordVerifier:
    """Checks an unlock credential against a stored bcrypt hash"""

    def verify(self, password_hash: Optional[str], credential: Optional[str]) -> bool:
        if not password_hash or not credential:
            return False
        if len(credential.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(credential.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is not a valid bcrypt hash")
            return False
