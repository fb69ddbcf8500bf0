"""Password generation and strength scoring.

Every draw comes from :class:`secrets.SystemRandom` (the operating system's
CSPRNG). Index selection uses rejection sampling, so alphabets whose size is
not a power of two carry no modulo bias.
"""

from __future__ import annotations

import logging
import secrets
import string
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

MAX_LENGTH = 1024


class PasswordPolicy(BaseModel):
    """Character categories plus the desired length."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    length: int = Field(default=16, ge=1, le=MAX_LENGTH)
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True


class StrengthLevel(str, Enum):
    WEAK = "Weak"
    FAIR = "Fair"
    GOOD = "Good"
    STRONG = "Strong"


class SecureGenerator:
    """Stateless generator; construct one at start-up and pass it around."""

    def __init__(self, rng: Optional[secrets.SystemRandom] = None) -> None:
        self._rng = rng or secrets.SystemRandom()

    def build_alphabet(self, policy: PasswordPolicy) -> str:
        """Concatenate the enabled categories.

        A policy with no category enabled falls back to lowercase letters.
        """
        alphabet = "".join(
            chars
            for enabled, chars in (
                (policy.include_uppercase, UPPERCASE),
                (policy.include_lowercase, LOWERCASE),
                (policy.include_numbers, NUMBERS),
                (policy.include_symbols, SYMBOLS),
            )
            if enabled
        )
        if not alphabet:
            logger.warning("Password policy selects no characters; using lowercase letters")
            return LOWERCASE
        return alphabet

    def generate(self, policy: Optional[PasswordPolicy] = None) -> str:
        policy = policy or PasswordPolicy()
        alphabet = self.build_alphabet(policy)
        return "".join(self._rng.choice(alphabet) for _ in range(policy.length))

    @staticmethod
    def score(password: str) -> int:
        """Additive 0-100 heuristic. Not a cryptanalytic estimate."""
        if not password:
            return 0

        length = len(password)
        score = 0
        if length >= 8:
            score += 20
        if length >= 12:
            score += 10
        if length >= 16:
            score += 10

        if any(c in LOWERCASE for c in password):
            score += 15
        if any(c in UPPERCASE for c in password):
            score += 15
        if any(c in NUMBERS for c in password):
            score += 15
        if any(not (c.isascii() and c.isalnum()) for c in password):
            score += 15

        # Reward low repetition
        if len(set(password)) > length * 0.7:
            score += 10

        return max(0, min(100, score))

    @staticmethod
    def classify(score: int) -> StrengthLevel:
        if score < 30:
            return StrengthLevel.WEAK
        if score < 60:
            return StrengthLevel.FAIR
        if score < 80:
            return StrengthLevel.GOOD
        return StrengthLevel.STRONG

    def assess(self, password: str) -> tuple[int, StrengthLevel]:
        value = self.score(password)
        return value, self.classify(value)
