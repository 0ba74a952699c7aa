"""Password strength heuristic.

A deterministic point system, not a cryptographic entropy proof::

    length >= 12          +25   (>= 8: +10 with advisory)
    lowercase present     +5
    uppercase present     +5
    digit present         +5
    symbol present        +10
    no 3+ repeated chars  +10
    no short sequence     +10
    no common word        +10
    entropy > 60 bits     +20   (> 40 bits: +10)

Each unmet criterion appends one advisory to ``feedback`` in the order above.
The entropy estimate is ``length * log2(alphabet)``, where alphabet is the
character-class pool the password draws from (26/26/10/32) capped at the
number of distinct characters it actually uses.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List

SEQUENCES = (
    "012", "123", "234", "345", "456", "567", "678", "789", "890",
    "abc", "bcd", "cde", "def",
)
COMMON_WORDS = ("password", "123456", "qwerty", "admin", "login")

_REPEAT_RE = re.compile(r"(.)\1{2,}", re.DOTALL)

# (minimum score, label), highest first
TIERS = (
    (80, "Very Strong"),
    (60, "Strong"),
    (40, "Moderate"),
    (20, "Weak"),
    (0, "Very Weak"),
)


@dataclass
class StrengthReport:
    score: int
    label: str
    feedback: List[str] = field(default_factory=list)
    entropy_bits: float = 0.0

    def to_dict(self):
        return {
            "score": self.score,
            "label": self.label,
            "feedback": list(self.feedback),
            "entropyBits": round(self.entropy_bits, 1),
        }


def _has_lower(password: str) -> bool:
    return any("a" <= c <= "z" for c in password)


def _has_upper(password: str) -> bool:
    return any("A" <= c <= "Z" for c in password)


def _has_digit(password: str) -> bool:
    return any("0" <= c <= "9" for c in password)


def _has_symbol(password: str) -> bool:
    return any(not (c.isascii() and c.isalnum()) for c in password)


def class_pool_size(password: str) -> int:
    size = 0
    if _has_lower(password):
        size += 26
    if _has_upper(password):
        size += 26
    if _has_digit(password):
        size += 10
    if _has_symbol(password):
        size += 32
    return size


def entropy_bits(password: str) -> float:
    alphabet = min(class_pool_size(password), len(set(password)))
    if alphabet < 2:
        return 0.0
    return len(password) * math.log2(alphabet)


def label_for(score: int) -> str:
    for minimum, label in TIERS:
        if score >= minimum:
            return label
    return TIERS[-1][1]


def score(password: str) -> StrengthReport:
    """Score a password; pure and deterministic."""
    points = 0
    feedback: List[str] = []

    if len(password) >= 12:
        points += 25
    elif len(password) >= 8:
        points += 10
        feedback.append("Consider using a longer password (12+ characters)")
    else:
        feedback.append("Password is too short (minimum 8 characters)")

    if _has_lower(password):
        points += 5
    else:
        feedback.append("Add lowercase letters")

    if _has_upper(password):
        points += 5
    else:
        feedback.append("Add uppercase letters")

    if _has_digit(password):
        points += 5
    else:
        feedback.append("Add numbers")

    if _has_symbol(password):
        points += 10
    else:
        feedback.append("Add special characters")

    if not _REPEAT_RE.search(password):
        points += 10
    else:
        feedback.append("Avoid repeating characters")

    lowered = password.lower()
    if not any(seq in lowered for seq in SEQUENCES):
        points += 10
    else:
        feedback.append("Avoid sequential characters")

    if not any(word in lowered for word in COMMON_WORDS):
        points += 10
    else:
        feedback.append("Avoid common words and patterns")

    bits = entropy_bits(password)
    if bits > 60:
        points += 20
    elif bits > 40:
        points += 10
    else:
        feedback.append("Use a wider variety of characters")

    points = max(0, min(points, 100))
    return StrengthReport(score=points, label=label_for(points), feedback=feedback, entropy_bits=bits)
