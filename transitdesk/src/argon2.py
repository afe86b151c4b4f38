from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

# Shared hasher, its parameters decide when stored hashes get upgraded
passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """
    Hash a plain-text account password with Argon2id.

    Args:
        password (str): The plain-text password.

    Returns:
        str: The encoded hash, salt and parameters included.
    """
    return passwordHasher.hash(password)


def checkPassword(password: str, passwordHash: str) -> bool:
    """
    Check a login password against the hash stored on the account.

    Args:
        password (str): The password provided at login.
        passwordHash (str): The hash stored in `User.password`.

    Returns:
        bool: True on a match. A mismatch or a corrupted hash gives False.
    """
    try:
        return passwordHasher.verify(passwordHash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def needsRehash(passwordHash: str) -> bool:
    """True when the hash was made with weaker parameters than the current ones."""
    return passwordHasher.check_needs_rehash(passwordHash)
