"""
Voice connection error handling tests.
Tests classification into stable categories, safe detail text and user hints.
"""
import asyncio
from types import SimpleNamespace

import discord
import pytest

from voice_control.errors import (
    AlreadyConnectedError,
    ConnectionErrorCategory,
    ConnectionErrorClassifier,
    ConnectionFailedError,
    InvalidTargetError,
)


class TestConnectionErrorClassification:
    def test_timeout(self):
        assert ConnectionErrorClassifier.classify(asyncio.TimeoutError()) == ConnectionErrorCategory.TIMEOUT
        assert ConnectionErrorClassifier.classify(TimeoutError()) == ConnectionErrorCategory.TIMEOUT

        error = discord.ClientException("Voice connection timed out")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.TIMEOUT

    def test_forbidden(self):
        response = SimpleNamespace(status=403, reason="Forbidden")
        error = discord.Forbidden(response, "Missing Permissions")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.FORBIDDEN

        error = Exception("Missing Access")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.FORBIDDEN

    def test_already_connected(self):
        error = discord.ClientException("Already connected to a voice channel.")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.ALREADY_CONNECTED

    def test_opus_missing(self):
        assert ConnectionErrorClassifier.classify(discord.opus.OpusNotLoaded()) == ConnectionErrorCategory.OPUS_MISSING

        error = RuntimeError("libopus could not be loaded")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.OPUS_MISSING

    def test_player_unavailable(self):
        error = RuntimeError("audio player is not running (status=error)")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.PLAYER_UNAVAILABLE

    def test_connection_failed_keeps_category(self):
        error = ConnectionFailedError("General", ConnectionErrorCategory.SHUTTING_DOWN, "shutting down")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.SHUTTING_DOWN

    def test_unknown_error(self):
        error = Exception("Something weird happened")
        assert ConnectionErrorClassifier.classify(error) == ConnectionErrorCategory.UNKNOWN_ERROR


class TestErrorDetail:
    def test_redacts_secrets(self):
        error = Exception("Improper token has been passed")
        assert ConnectionErrorClassifier.detail(error) == "[redacted: potential secret]"

    def test_strips_trailing_period(self):
        error = discord.ClientException("Already connected to a voice channel.")
        assert ConnectionErrorClassifier.detail(error) == "Already connected to a voice channel"

    def test_empty_message_uses_type_name(self):
        assert ConnectionErrorClassifier.detail(asyncio.TimeoutError()) == "TimeoutError"

    def test_to_error(self):
        error = ConnectionErrorClassifier.to_error("General", asyncio.TimeoutError())

        assert isinstance(error, ConnectionFailedError)
        assert error.channel_ref == "General"
        assert error.category == ConnectionErrorCategory.TIMEOUT
        assert "General" in str(error)


class TestUserMessages:
    @pytest.mark.parametrize("category", [
        ConnectionErrorCategory.TIMEOUT,
        ConnectionErrorCategory.FORBIDDEN,
        ConnectionErrorCategory.OPUS_MISSING,
        ConnectionErrorCategory.PLAYER_UNAVAILABLE,
        ConnectionErrorCategory.SHUTTING_DOWN,
    ])
    def test_known_categories_have_hints(self, category):
        assert ConnectionErrorClassifier.get_user_message(category) != "Check logs for more details."

    def test_fallback(self):
        assert ConnectionErrorClassifier.get_user_message(None) == "Check logs for more details."
        assert ConnectionErrorClassifier.get_user_message(ConnectionErrorCategory.UNKNOWN_ERROR) == (
            "Check logs for more details."
        )


class TestErrorTypes:
    def test_invalid_target(self):
        error = InvalidTargetError("Nope", reason="not_voice")
        assert error.reason == "not_voice"
        assert "(Nope)" in str(error)

    def test_already_connected_error(self):
        error = AlreadyConnectedError("1001", "555")
        assert error.channel_id == "555"
