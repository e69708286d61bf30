"""
Password generation and strength checks.
"""

import secrets
import string
from typing import Tuple

from . import config

STRENGTH_WEAK = "weak"
STRENGTH_MEDIUM = "medium"
STRENGTH_STRONG = "strong"
STRENGTH_VERY_STRONG = "very-strong"


def generate_password(length: int = config.PASSWORD_GENERATOR_DEFAULT_LENGTH,
                      uppercase: bool = True, lowercase: bool = True,
                      digits: bool = True, symbols: bool = True,
                      exclude_ambiguous: bool = False) -> str:
    """
    Generate a random password with the secrets module.

    At least one character of every selected class is included.

    Raises:
        ValueError: If no character class is selected or length is out of range
    """
    if not config.PASSWORD_GENERATOR_MIN_LENGTH <= length <= config.PASSWORD_GENERATOR_MAX_LENGTH:
        raise ValueError(
            f"Length must be between {config.PASSWORD_GENERATOR_MIN_LENGTH} "
            f"and {config.PASSWORD_GENERATOR_MAX_LENGTH}")

    classes = []
    if uppercase:
        classes.append(string.ascii_uppercase)
    if lowercase:
        classes.append(string.ascii_lowercase)
    if digits:
        classes.append(string.digits)
    if symbols:
        classes.append(string.punctuation)
    if not classes:
        raise ValueError("Select at least one character type")

    if exclude_ambiguous:
        ambiguous = config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS
        classes = [''.join(c for c in chars if c not in ambiguous) for chars in classes]

    chars = ''.join(classes)
    password = [secrets.choice(group) for group in classes]
    password += [secrets.choice(chars) for _ in range(length - len(password))]
    # Required characters would otherwise always lead
    for i in range(len(password) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        password[i], password[j] = password[j], password[i]
    return ''.join(password)


def password_strength(password: str) -> str:
    """Rate a password as weak, medium, strong or very-strong."""
    score = 0
    if len(password) >= 8:
        score += 1
    if len(password) >= 12:
        score += 1
    if any(c in string.ascii_lowercase for c in password):
        score += 1
    if any(c in string.ascii_uppercase for c in password):
        score += 1
    if any(c in string.digits for c in password):
        score += 1
    if any(not c.isascii() or not c.isalnum() for c in password):
        score += 1

    if score <= 2:
        return STRENGTH_WEAK
    if score <= 4:
        return STRENGTH_MEDIUM
    if score <= 5:
        return STRENGTH_STRONG
    return STRENGTH_VERY_STRONG


def check_master_passphrase(passphrase: str) -> Tuple[bool, str]:
    """
    Check if a new master passphrase meets minimum requirements.

    Returns:
        Tuple of (is_strong, message)
    """
    if len(passphrase) < config.PASSPHRASE_MIN_LENGTH:
        return False, f"Passphrase must be at least {config.PASSPHRASE_MIN_LENGTH} characters long"

    has_upper = any(c.isupper() for c in passphrase)
    has_lower = any(c.islower() for c in passphrase)
    has_digit = any(c.isdigit() for c in passphrase)

    if not has_upper:
        return False, "Passphrase must contain uppercase letters"
    if not has_lower:
        return False, "Passphrase must contain lowercase letters"
    if not has_digit:
        return False, "Passphrase must contain digits"

    return True, "Passphrase is strong"
