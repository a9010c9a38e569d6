"""
Short code generation strategies.
Uses Strategy Pattern to allow different generation algorithms.

Strategies only propose candidates; the allocator checks them against the
code namespace and the link store enforces uniqueness on insert.
"""

import secrets
from abc import ABC, abstractmethod


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    @abstractmethod
    def generate(self) -> str:
        """Propose a candidate short code."""
        pass


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Uniform random codes from an unambiguous alphabet.

    0/O and 1/l/I are left out so codes survive being read aloud or typed
    from print. 56^7 is roughly 1.7e12 codes, so collisions stay rare for
    any realistic volume and the retry loop almost never runs twice.
    """

    ALPHABET = "23456789abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ"

    def __init__(self, length: int = 7):
        if length < 4:
            raise ValueError(f"Short code length {length} is too short to be collision resistant")
        self.length = length

    def generate(self) -> str:
        return "".join(secrets.choice(self.ALPHABET) for _ in range(self.length))


class PronounceableShortCodeStrategy(ShortCodeStrategy):
    """
    Memorable lowercase codes: consonant, vowel, then consonant-or-digit,
    vowel-or-digit and an optional fifth character.

    Pros: easy to read out and remember
    Cons: small space (a few million codes), so collisions and retries are
    far more common than with the random strategy
    """

    VOWELS = "aeiou"
    CONSONANTS = "bcdfghjkmnpqrstvwxz"
    DIGITS = "23456789"

    def generate(self) -> str:
        chars = [
            secrets.choice(self.CONSONANTS),
            secrets.choice(self.VOWELS),
            secrets.choice(self.CONSONANTS + self.DIGITS),
            secrets.choice(self.VOWELS + self.DIGITS),
        ]
        if secrets.randbelow(10) >= 3:
            chars.append(secrets.choice(self.CONSONANTS + self.DIGITS))
        return "".join(chars)
