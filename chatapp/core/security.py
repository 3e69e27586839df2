from passlib.context import CryptContext
from ..core.config import settings

pwd_context = CryptContext(schemes=settings.password_schemes, deprecated="auto")

def hash_password(password: str) -> str:
    """
    Hash a password with a per-password salt.
    """
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        plain_password: Password as typed by the user
        hashed_password: Stored hash

    Returns:
        False when the password does not match or the stored value is not
        a hash this context recognises.
    """
    if not hashed_password or pwd_context.identify(hashed_password) is None:
        return False
    return pwd_context.verify(plain_password, hashed_password)
