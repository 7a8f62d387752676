"""
Passphrase utilities — random generation and master passphrase strength rules.

Both helpers are pure and usable whether the vault session is locked or not.
"""
import re
import string
import secrets
from typing import Any, Optional, Union
from collections.abc import Mapping

from pydantic import BaseModel, Field

from ..exceptions import InvalidInput

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

DEFAULT_LENGTH = 16
MIN_PASSPHRASE_LENGTH = 8

_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
)


class CharacterClasses(BaseModel):
    """Character classes enabled for passphrase generation."""

    uppercase: bool = True
    lowercase: bool = True
    numbers: bool = True
    symbols: bool = True

    def alphabet(self) -> str:
        """Concatenate the enabled classes in a fixed order.

        Falls back to every class when none is enabled.
        """
        charset = ""
        if self.uppercase:
            charset += UPPERCASE
        if self.lowercase:
            charset += LOWERCASE
        if self.numbers:
            charset += NUMBERS
        if self.symbols:
            charset += SYMBOLS
        return charset or UPPERCASE + LOWERCASE + NUMBERS + SYMBOLS


class PassphraseValidation(BaseModel):
    """Outcome of a strength check. ``valid`` iff ``errors`` is empty."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


def generate_passphrase(
    length: int = DEFAULT_LENGTH,
    classes: Optional[Union[CharacterClasses, Mapping[str, Any]]] = None,
) -> str:
    """Generate a random passphrase.

    Args:
        length: Number of characters, a positive integer.
        classes: Enabled character classes, as a ``CharacterClasses`` or a
            mapping with any of ``uppercase``, ``lowercase``, ``numbers``,
            ``symbols``. Missing keys in a mapping count as disabled.
            ``None`` enables every class.

    Returns:
        The generated passphrase.

    Raises:
        InvalidInput: If ``length`` is not a positive integer.
    """
    if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
        raise InvalidInput(f"length must be a positive integer, got {length!r}")
    if classes is None:
        classes = CharacterClasses()
    elif isinstance(classes, Mapping):
        classes = CharacterClasses(
            uppercase=bool(classes.get("uppercase", False)),
            lowercase=bool(classes.get("lowercase", False)),
            numbers=bool(classes.get("numbers", False)),
            symbols=bool(classes.get("symbols", False)),
        )
    charset = classes.alphabet()
    return "".join(secrets.choice(charset) for _ in range(length))


def validate_passphrase(passphrase: str) -> PassphraseValidation:
    """Check a master passphrase against the strength rules.

    Every rule is evaluated; all violations are returned together.
    """
    errors: list[str] = []
    if len(passphrase) < MIN_PASSPHRASE_LENGTH:
        errors.append(
            f"Password must be at least {MIN_PASSPHRASE_LENGTH} characters long"
        )
    for pattern, message in _RULES:
        if not pattern.search(passphrase):
            errors.append(message)
    return PassphraseValidation(valid=not errors, errors=errors)
