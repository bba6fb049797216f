"""Unit tests for API key issuing and validation."""
import hashlib
import hmac
from datetime import date

import pytest

from auth.api_key import (
    ApiKeyValidator,
    ConfigurationError,
    InvalidApiKeyError,
    MissingApiKeyError,
    generate_api_key,
    sign_key_content,
)
from auth.key_cli import main


MASTER_KEY = "abc-master-secret"
TODAY = date(2024, 3, 20)


@pytest.fixture
def validator():
    """Create a production validator pinned to TODAY."""
    return ApiKeyValidator(master_key=MASTER_KEY, today=TODAY)


class TestSignature:
    """Test cases for key signing."""

    def test_signature_uses_first_three_secret_characters(self):
        """Test the truncated HMAC-SHA256 signature."""
        content = "stucal_r4nd0m_2024-12-31"
        expected = hmac.new(b"abc", content.encode(), hashlib.sha256).hexdigest()[:8]

        assert sign_key_content(MASTER_KEY, content) == expected
        assert sign_key_content("abcdefgh", content) == expected

    def test_generate_api_key_shape(self):
        """Test that generated keys have four underscore-separated parts."""
        api_key = generate_api_key(MASTER_KEY, date(2024, 12, 31), random_part="r4nd0m")

        prefix, random_part, expiry, signature = api_key.split('_')
        assert prefix == "stucal"
        assert random_part == "r4nd0m"
        assert expiry == "2024-12-31"
        assert signature == sign_key_content(MASTER_KEY, "stucal_r4nd0m_2024-12-31")

    def test_generate_api_key_random_part(self):
        """Test that keys get distinct random parts by default."""
        first = generate_api_key(MASTER_KEY, date(2024, 12, 31))
        second = generate_api_key(MASTER_KEY, date(2024, 12, 31))

        assert first != second
        assert len(first.split('_')) == 4

    def test_generate_api_key_requires_master_key(self):
        """Test that keys cannot be issued without a secret."""
        with pytest.raises(ConfigurationError):
            generate_api_key("", date(2024, 12, 31))


class TestApiKeyValidator:
    """Test cases for ApiKeyValidator class."""

    def test_valid_key(self, validator):
        """Test that a freshly generated key is accepted."""
        api_key = generate_api_key(MASTER_KEY, date(2024, 12, 31))

        assert validator.validate(api_key) is True

    def test_key_valid_on_expiry_day(self, validator):
        """Test that a key is accepted through its expiry date."""
        api_key = generate_api_key(MASTER_KEY, TODAY)

        assert validator.validate(api_key) is True

    def test_expired_key(self, validator):
        """Test that keys past their expiry date are rejected."""
        api_key = generate_api_key(MASTER_KEY, date(2024, 3, 19))

        with pytest.raises(InvalidApiKeyError, match="API key has expired"):
            validator.validate(api_key)

    @pytest.mark.parametrize("api_key", [None, ""])
    def test_missing_key(self, validator, api_key):
        """Test that a missing key is reported as 401."""
        with pytest.raises(MissingApiKeyError) as exc_info:
            validator.validate(api_key)

        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("api_key", [
        "stucal_abc_2024-12-31",
        "stucal_a_b_2024-12-31_deadbeef",
        "not-a-key"
    ])
    def test_wrong_format(self, validator, api_key):
        """Test that keys without exactly four parts are rejected."""
        with pytest.raises(InvalidApiKeyError, match="Invalid API key format") as exc_info:
            validator.validate(api_key)

        assert exc_info.value.status_code == 403

    def test_wrong_prefix(self, validator):
        """Test that only the service prefix is accepted."""
        with pytest.raises(InvalidApiKeyError, match="Invalid API key prefix"):
            validator.validate("other_abc_2024-12-31_deadbeef")

    @pytest.mark.parametrize("expiry", ["2024-13-01", "20241231", "soon"])
    def test_bad_expiry(self, validator, expiry):
        """Test that malformed expiry dates are rejected."""
        with pytest.raises(InvalidApiKeyError, match="Invalid expiry date format"):
            validator.validate(f"stucal_abc_{expiry}_deadbeef")

    def test_bad_signature(self, validator):
        """Test that a tampered key is rejected."""
        api_key = generate_api_key(MASTER_KEY, date(2024, 12, 31), random_part="abc")
        tampered = api_key.replace("2024-12-31", "2025-12-31")

        with pytest.raises(InvalidApiKeyError, match="Invalid API key signature"):
            validator.validate(tampered)

    def test_key_signed_with_other_secret(self, validator):
        """Test that keys from another deployment are rejected."""
        api_key = generate_api_key("xyz-other", date(2024, 12, 31))

        with pytest.raises(InvalidApiKeyError, match="Invalid API key signature"):
            validator.validate(api_key)

    def test_non_ascii_signature(self, validator):
        """Test that odd characters in the signature are rejected cleanly."""
        with pytest.raises(InvalidApiKeyError, match="Invalid API key signature"):
            validator.validate("stucal_abc_2024-12-31_dé")

    def test_development_skips_validation(self):
        """Test that development mode accepts anything."""
        validator = ApiKeyValidator(master_key=None, development=True)

        assert validator.validate(None) is True

    def test_missing_master_key_in_production(self):
        """Test that production without MASTER_KEY is a configuration error."""
        validator = ApiKeyValidator(master_key=None)

        with pytest.raises(ConfigurationError):
            validator.validate("stucal_abc_2024-12-31_deadbeef")


class TestKeyCli:
    """Test cases for the key generation command."""

    def test_prints_valid_key(self, capsys, monkeypatch):
        """Test that the command prints a key accepted by the validator."""
        monkeypatch.setenv('MASTER_KEY', MASTER_KEY)

        assert main(['2024-12-31']) == 0

        api_key = capsys.readouterr().out.strip()
        assert ApiKeyValidator(master_key=MASTER_KEY, today=TODAY).validate(api_key)

    def test_master_key_option(self, capsys, monkeypatch):
        """Test that --master-key overrides the environment."""
        monkeypatch.delenv('MASTER_KEY', raising=False)

        assert main(['2024-12-31', '--master-key', MASTER_KEY]) == 0

        api_key = capsys.readouterr().out.strip()
        assert api_key.split('_')[2] == "2024-12-31"

    def test_missing_master_key(self, capsys, monkeypatch):
        """Test that the command fails without a secret."""
        monkeypatch.delenv('MASTER_KEY', raising=False)

        assert main(['2024-12-31']) == 1
        assert "MASTER_KEY" in capsys.readouterr().err

    def test_invalid_expiry(self, monkeypatch):
        """Test that argparse rejects malformed dates."""
        monkeypatch.setenv('MASTER_KEY', MASTER_KEY)

        with pytest.raises(SystemExit):
            main(['31/12/2024'])
