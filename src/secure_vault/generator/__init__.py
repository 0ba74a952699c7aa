# Generator Module - Password Generation and Strength Scoring

from .password_generator import (
    AMBIGUOUS,
    SIMILAR,
    SYMBOLS,
    GeneratorPolicy,
    build_charset,
    generate,
    generate_many,
)
from .strength import StrengthReport, score

__all__ = [
    "GeneratorPolicy",
    "build_charset",
    "generate",
    "generate_many",
    "StrengthReport",
    "score",
    "SYMBOLS",
    "SIMILAR",
    "AMBIGUOUS",
]
