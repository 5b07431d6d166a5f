"""
Tests for code generation, hashing and identity helpers.
"""

import pytest

from otp_backend.core.security import (
    generate_otp,
    hash_otp,
    is_valid_otp_format,
    mask_identity,
    normalize_identity,
    otp_matches,
)


class TestCodes:
    def test_generated_codes_are_six_digits_without_padding(self):
        for _ in range(500):
            code = generate_otp()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_hash_is_keyed_hex_digest(self):
        digest = hash_otp("key-a", "123456")

        assert len(digest) == 64
        assert digest == hash_otp("key-a", "123456")
        assert digest != hash_otp("key-b", "123456")
        assert "123456" not in digest

    def test_otp_matches(self):
        digest = hash_otp("key", "654321")

        assert otp_matches("key", "654321", digest) is True
        assert otp_matches("key", "654320", digest) is False
        assert otp_matches("other", "654321", digest) is False

    @pytest.mark.parametrize("code", ["123456", "000000", "999999"])
    def test_valid_otp_format(self, code):
        assert is_valid_otp_format(code)

    @pytest.mark.parametrize("code", ["12345", "1234567", "abcdef", "12 456", "", None, 123456])
    def test_invalid_otp_format(self, code):
        assert not is_valid_otp_format(code)


class TestIdentity:
    @pytest.mark.parametrize("phone", ["+919999999999", "+14155552671", "+12"])
    def test_e164_phone_numbers_pass_through(self, phone):
        assert normalize_identity(phone) == phone

    @pytest.mark.parametrize(
        "identity",
        ["919999999999", "+0919999999", "+1234567890123456", "+91 99999 99999", "+", "", None, 42, "not-an-email@", "user@"],
    )
    def test_malformed_identities_rejected(self, identity):
        assert normalize_identity(identity) is None

    def test_email_domain_is_normalized(self):
        assert normalize_identity("student@Example.COM") == "student@example.com"

    def test_mask_phone_keeps_last_two_digits(self):
        assert mask_identity("+919999999910") == "+XXXXXXXXXX10"

    def test_mask_email(self):
        assert mask_identity("student@example.com") == "s***@example.com"
