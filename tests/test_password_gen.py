"""Tests for PasswordGenerator."""

from __future__ import annotations

import string

import pytest

from pearanoid.crypto.engine import DIGITS, SYMBOLS, PasswordGenerator
from pearanoid.errors import ValidationError


class TestGenerate:
    def test_default_length(self):
        assert len(PasswordGenerator.generate()) == 16

    def test_correct_length(self):
        assert len(PasswordGenerator.generate(40)) == 40

    def test_every_selected_class_present(self):
        for _ in range(20):
            pw = PasswordGenerator.generate(4)
            assert any(c in string.ascii_uppercase for c in pw)
            assert any(c in string.ascii_lowercase for c in pw)
            assert any(c in DIGITS for c in pw)
            assert any(c in SYMBOLS for c in pw)

    def test_only_selected_classes(self):
        pw = PasswordGenerator.generate(50, uppercase=False, lowercase=False, symbols=False)
        assert all(c in DIGITS for c in pw)

    def test_below_minimum_raises(self):
        with pytest.raises(ValidationError, match="at least 4"):
            PasswordGenerator.generate(3)

    def test_above_maximum_raises(self):
        with pytest.raises(ValidationError, match="at most"):
            PasswordGenerator.generate(129)

    def test_no_class_raises(self):
        with pytest.raises(ValidationError, match="character set"):
            PasswordGenerator.generate(
                12, uppercase=False, lowercase=False, digits=False, symbols=False
            )

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            PasswordGenerator.generate(0)


class TestEntropy:
    def test_positive_entropy(self):
        assert PasswordGenerator.calculate_entropy("abc", string.ascii_lowercase) > 0

    def test_longer_is_more_entropy(self):
        e1 = PasswordGenerator.calculate_entropy("abc", string.ascii_lowercase)
        e2 = PasswordGenerator.calculate_entropy("abcdef", string.ascii_lowercase)
        assert e2 > e1

    def test_empty_returns_zero(self):
        assert PasswordGenerator.calculate_entropy("", string.ascii_letters) == 0.0
