# Tests for password generation and strength rating

import string

import pytest

from sentinelvault import config
from sentinelvault.generator import (STRENGTH_MEDIUM, STRENGTH_STRONG, STRENGTH_VERY_STRONG,
                                     STRENGTH_WEAK, check_master_passphrase,
                                     generate_password, password_strength)


class TestGeneratePassword:
    def test_default_length(self):
        assert len(generate_password()) == config.PASSWORD_GENERATOR_DEFAULT_LENGTH

    @pytest.mark.parametrize("length", [8, 12, 64, 128])
    def test_requested_length(self, length):
        assert len(generate_password(length=length)) == length

    @pytest.mark.parametrize("length", [0, 7, 129])
    def test_length_out_of_range(self, length):
        with pytest.raises(ValueError):
            generate_password(length=length)

    def test_contains_every_selected_class(self):
        for _ in range(50):
            password = generate_password(length=8)
            assert any(c in string.ascii_uppercase for c in password)
            assert any(c in string.ascii_lowercase for c in password)
            assert any(c in string.digits for c in password)
            assert any(c in string.punctuation for c in password)

    def test_digits_only(self):
        password = generate_password(uppercase=False, lowercase=False, symbols=False)
        assert password.isdigit()

    def test_no_class_selected(self):
        with pytest.raises(ValueError):
            generate_password(uppercase=False, lowercase=False, digits=False, symbols=False)

    def test_exclude_ambiguous(self):
        for _ in range(50):
            password = generate_password(length=64, exclude_ambiguous=True)
            assert not set(password) & set(config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS)

    def test_passwords_differ(self):
        assert generate_password() != generate_password()


class TestPasswordStrength:
    @pytest.mark.parametrize("password,expected", [
        ("", STRENGTH_WEAK),
        ("abc", STRENGTH_WEAK),
        ("abcdefgh", STRENGTH_WEAK),
        ("abcdefgh1", STRENGTH_MEDIUM),
        ("Abcdefgh1", STRENGTH_MEDIUM),
        ("Abcdefghijk1", STRENGTH_STRONG),
        ("Abcdefghijk1!", STRENGTH_VERY_STRONG),
        ("Abcdefghijk1é", STRENGTH_VERY_STRONG),
    ])
    def test_rating(self, password, expected):
        assert password_strength(password) == expected

    def test_generated_passwords_are_very_strong(self):
        assert password_strength(generate_password()) == STRENGTH_VERY_STRONG


class TestMasterPassphrase:
    def test_accepts_strong(self):
        ok, _ = check_master_passphrase("Correct-Horse-9")
        assert ok

    @pytest.mark.parametrize("passphrase", [
        "Short1",
        "alllowercase123",
        "ALLUPPERCASE123",
        "NoDigitsHereAtAll",
    ])
    def test_rejects_weak(self, passphrase):
        ok, message = check_master_passphrase(passphrase)
        assert not ok
        assert message
