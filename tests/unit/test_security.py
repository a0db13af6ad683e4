"""
Tests for Slack request signing.
"""

import pytest

from epic_bot.core.exceptions import SignatureVerificationError
from epic_bot.core.security import compute_signature, verify_slack_signature

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = b"command=%2Fstory&text=Student+dashboard"
NOW = 1_700_000_000


class TestVerifySlackSignature:
    """Tests for verify_slack_signature."""

    def test_valid_signature(self) -> None:
        signature = compute_signature(SECRET, str(NOW), BODY)

        verify_slack_signature(SECRET, BODY, str(NOW), signature, now=NOW + 10)

    def test_signature_format(self) -> None:
        signature = compute_signature(SECRET, str(NOW), BODY)

        assert signature.startswith("v0=")
        assert len(signature) == 3 + 64

    def test_tampered_body(self) -> None:
        signature = compute_signature(SECRET, str(NOW), BODY)

        with pytest.raises(SignatureVerificationError):
            verify_slack_signature(SECRET, BODY + b"x", str(NOW), signature, now=NOW)

    def test_stale_timestamp(self) -> None:
        signature = compute_signature(SECRET, str(NOW), BODY)

        with pytest.raises(SignatureVerificationError, match="window"):
            verify_slack_signature(SECRET, BODY, str(NOW), signature, now=NOW + 301)

    @pytest.mark.parametrize("timestamp, signature", [(None, "v0=abc"), (str(NOW), None), ("", "")])
    def test_missing_headers(self, timestamp, signature) -> None:
        with pytest.raises(SignatureVerificationError, match="Missing"):
            verify_slack_signature(SECRET, BODY, timestamp, signature, now=NOW)

    def test_malformed_timestamp(self) -> None:
        with pytest.raises(SignatureVerificationError, match="Malformed"):
            verify_slack_signature(SECRET, BODY, "yesterday", "v0=abc", now=NOW)

    def test_error_maps_to_401(self) -> None:
        assert SignatureVerificationError().status_code == 401
