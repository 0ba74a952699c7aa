"""Tests for the password strength heuristic."""

import pytest

from secure_vault.generator.strength import (
    StrengthReport,
    class_pool_size,
    entropy_bits,
    label_for,
    score,
)

LOW_TIERS = ("Very Weak", "Weak")
STRONG_TIERS = ("Strong", "Very Strong")


class TestTiers:

    @pytest.mark.parametrize("points,label", [
        (100, "Very Strong"),
        (80, "Very Strong"),
        (79, "Strong"),
        (60, "Strong"),
        (59, "Moderate"),
        (40, "Moderate"),
        (39, "Weak"),
        (20, "Weak"),
        (19, "Very Weak"),
        (0, "Very Weak"),
    ])
    def test_cutoffs(self, points, label):
        assert label_for(points) == label


class TestScore:

    def test_empty_password(self):
        report = score("")
        assert report.label in LOW_TIERS
        assert report.score == 30
        assert report.feedback[0] == "Password is too short (minimum 8 characters)"

    def test_repeated_single_character(self):
        report = score("aaaaaaaaaa")
        assert report.label in LOW_TIERS
        assert report.score == 35
        assert "Avoid repeating characters" in report.feedback

    def test_long_mixed_passphrase(self):
        report = score("Tr0ub4dor&3xamplePhrase!")
        assert report.label in STRONG_TIERS
        assert report.score == 100
        assert report.feedback == []

    def test_very_weak(self):
        report = score("aaabc")
        assert report.score == 15
        assert report.label == "Very Weak"

    def test_feedback_order(self):
        assert score("aaabc").feedback == [
            "Password is too short (minimum 8 characters)",
            "Add uppercase letters",
            "Add numbers",
            "Add special characters",
            "Avoid repeating characters",
            "Avoid sequential characters",
            "Use a wider variety of characters",
        ]

    def test_medium_length_advisory(self):
        report = score("Xq7!Rw2#")
        assert report.feedback[0] == "Consider using a longer password (12+ characters)"

    def test_common_word_detected_case_insensitively(self):
        assert "Avoid common words and patterns" in score("MyPASSWORDisGreat!9").feedback
        assert "Avoid common words and patterns" in score("xQwErTy-77Zk").feedback

    def test_sequence_detected_case_insensitively(self):
        assert "Avoid sequential characters" in score("zzXABCyy").feedback
        assert "Avoid sequential characters" in score("k7890!Lm").feedback

    def test_score_is_clamped(self):
        report = score("V3ry-L0ng&Rand0m!Passphr4se#With*Symbols")
        assert 0 <= report.score <= 100

    def test_deterministic(self):
        assert score("Some1Password!") == score("Some1Password!")

    def test_symbols_include_non_ascii(self):
        assert "Add special characters" not in score("héllo").feedback

    def test_report_to_dict(self):
        d = score("").to_dict()
        assert set(d) == {"score", "label", "feedback", "entropyBits"}
        assert isinstance(StrengthReport(score=1, label="Very Weak").feedback, list)


class TestEntropy:

    def test_pool_sizes(self):
        assert class_pool_size("") == 0
        assert class_pool_size("a") == 26
        assert class_pool_size("aA") == 52
        assert class_pool_size("aA1") == 62
        assert class_pool_size("aA1!") == 94

    def test_single_symbol_alphabet_has_no_entropy(self):
        assert entropy_bits("aaaaaaaaaa") == 0.0
        assert entropy_bits("") == 0.0

    def test_capped_by_distinct_characters(self):
        # 2 distinct lowercase characters: log2(2) = 1 bit each
        assert entropy_bits("abababab") == pytest.approx(8.0)

    def test_capped_by_class_pool(self):
        # Digits-only pool is 10
        assert entropy_bits("0123456789") == pytest.approx(10 * 3.321928, rel=1e-5)
