# Generator - Random Password Generation
#
# Builds the candidate alphabet from the enabled character classes, removes
# the "similar" and "ambiguous" sets on request and samples each character
# independently from RandomSource bytes.
#
# Sampling is rejection-based: bytes at or above the largest multiple of the
# alphabet size that fits in 256 are discarded, so every character of the
# alphabet is equally likely. No class-presence guarantee is made.

import string
from dataclasses import dataclass
from typing import List, Optional

from ..core.exceptions import EmptyCharset, InvalidPolicy
from ..vault.encryption import SYSTEM_RANDOM, RandomSource

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

# Characters that are easy to confuse visually
SIMILAR = "il1Lo0O"
# Brackets, quotes and punctuation that break markup or shell quoting
AMBIGUOUS = "{}[]()/\\'\"`~,;.<>"

MIN_LENGTH = 4
MAX_LENGTH = 128
DEFAULT_LENGTH = 16


@dataclass
class GeneratorPolicy:
    """Length and character-class switches for generate()."""

    length: int = DEFAULT_LENGTH
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True
    exclude_similar: bool = False
    exclude_ambiguous: bool = False

    def __post_init__(self):
        if isinstance(self.length, bool) or not isinstance(self.length, int):
            raise InvalidPolicy("Password length must be an integer")
        if not MIN_LENGTH <= self.length <= MAX_LENGTH:
            raise InvalidPolicy(
                f"Password length must be between {MIN_LENGTH} and {MAX_LENGTH}, got {self.length}"
            )


def build_charset(policy: GeneratorPolicy) -> str:
    """
    Effective alphabet for a policy, in class order.

    Raises:
        EmptyCharset: No class enabled, or exclusions removed every character
    """
    charset = ""
    if policy.include_uppercase:
        charset += UPPERCASE
    if policy.include_lowercase:
        charset += LOWERCASE
    if policy.include_numbers:
        charset += DIGITS
    if policy.include_symbols:
        charset += SYMBOLS

    if policy.exclude_similar:
        charset = "".join(c for c in charset if c not in SIMILAR)
    if policy.exclude_ambiguous:
        charset = "".join(c for c in charset if c not in AMBIGUOUS)

    if not charset:
        raise EmptyCharset("No character types selected")
    return charset


def generate(policy: Optional[GeneratorPolicy] = None, random_source: Optional[RandomSource] = None) -> str:
    """
    Generate one password under policy.

    Args:
        policy: Length and class switches (defaults: 16 chars, all classes)
        random_source: Byte source (default: OS CSPRNG)

    Returns:
        Password of exactly policy.length characters

    Raises:
        EmptyCharset: The policy leaves no usable characters
    """
    policy = policy or GeneratorPolicy()
    rng = random_source or SYSTEM_RANDOM
    charset = build_charset(policy)

    size = len(charset)
    limit = 256 - (256 % size)

    chars: List[str] = []
    while len(chars) < policy.length:
        for byte in rng.token_bytes(policy.length - len(chars)):
            if byte < limit:
                chars.append(charset[byte % size])
    return "".join(chars)


def generate_many(policy: Optional[GeneratorPolicy] = None, count: int = 5,
                  random_source: Optional[RandomSource] = None) -> List[str]:
    """Generate count independent passwords under the same policy."""
    if count < 1:
        raise ValueError("count must be at least 1")
    return [generate(policy, random_source) for _ in range(count)]
