"""
Security utilities.
"""
import secrets
import string

PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_password(length: int = 24) -> str:
    """
    Generate a random password for Atlas users created without one.

    Args:
        length: Number of characters

    Returns:
        Password drawn from letters and digits with a CSPRNG
    """
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
