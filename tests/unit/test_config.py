"""
Unit tests for configuration module.

Tests environment variable parsing and settings validation.
"""

import os
import pytest
from unittest.mock import patch


class TestParseCommaList:
    """Test comma-separated list parsing."""

    @pytest.mark.unit
    def test_parse_simple_list(self):
        """Should parse simple comma-separated values."""
        from threadmem.core.config import parse_comma_list
        assert parse_comma_list("a,b,c") == ["a", "b", "c"]

    @pytest.mark.unit
    def test_parse_with_spaces(self):
        """Should strip whitespace."""
        from threadmem.core.config import parse_comma_list
        assert parse_comma_list(" a , b , c ") == ["a", "b", "c"]

    @pytest.mark.unit
    def test_parse_none_case_insensitive(self):
        """Should treat 'none' as empty list in any case."""
        from threadmem.core.config import parse_comma_list
        assert parse_comma_list("none") == []
        assert parse_comma_list("NONE") == []

    @pytest.mark.unit
    def test_parse_already_list(self):
        """Should return list as-is."""
        from threadmem.core.config import parse_comma_list
        assert parse_comma_list(["x", "y"]) == ["x", "y"]

    @pytest.mark.unit
    def test_parse_empty_string(self):
        """Should handle empty string."""
        from threadmem.core.config import parse_comma_list
        assert parse_comma_list("") == []


class TestSummarySettings:
    """Test summary memory settings."""

    @pytest.mark.unit
    def test_defaults(self):
        """Should expose the documented defaults."""
        from threadmem.core.config import Settings
        settings = Settings(_env_file=None)
        assert settings.SUMMARY_ENABLED is True
        assert settings.SUMMARY_MAX_DELTAS == 20
        assert settings.SUMMARY_DIGEST_MAX_CHARS == 1500
        assert settings.SUMMARY_SAVE_ATTEMPTS == 3

    @pytest.mark.unit
    def test_disabled_threads_list(self):
        """Should parse SUMMARY_DISABLED_THREADS properly."""
        with patch.dict(os.environ, {"SUMMARY_DISABLED_THREADS": "t1, t2,t3"}):
            from threadmem.core.config import Settings
            settings = Settings(_env_file=None)
            assert settings.disabled_threads_list == ["t1", "t2", "t3"]

    @pytest.mark.unit
    def test_empty_int_falls_back_to_default(self):
        """Blank integer env vars should use the default."""
        with patch.dict(os.environ, {"SUMMARY_MAX_DELTAS": "", "SUMMARY_DIGEST_MAX_CHARS": "800"}):
            from threadmem.core.config import Settings
            settings = Settings(_env_file=None)
            assert settings.SUMMARY_MAX_DELTAS == 20
            assert settings.SUMMARY_DIGEST_MAX_CHARS == 800

    @pytest.mark.unit
    def test_enabled_flag_from_env(self):
        with patch.dict(os.environ, {"SUMMARY_ENABLED": "false"}):
            from threadmem.core.config import Settings
            assert Settings(_env_file=None).SUMMARY_ENABLED is False


class TestSettingsAIKey:
    """Test AI API key resolution."""

    @pytest.mark.unit
    def test_get_ai_key_groq(self):
        """Should return Groq key for groq provider."""
        with patch.dict(os.environ, {"GROQ_API_KEY": "groq-test-key"}):
            from threadmem.core.config import Settings
            settings = Settings(_env_file=None)
            assert settings.get_ai_key("groq") == "groq-test-key"

    @pytest.mark.unit
    def test_openai_falls_back_to_ai_api_key(self):
        """AI_API_KEY should be used when OPENAI_API_KEY is unset."""
        env = {"AI_API_KEY": "generic-key", "AI_PROVIDER": "openai"}
        with patch.dict(os.environ, env):
            os.environ.pop("OPENAI_API_KEY", None)
            from threadmem.core.config import Settings
            settings = Settings(_env_file=None)
            assert settings.get_ai_key() == "generic-key"

    @pytest.mark.unit
    def test_unknown_provider(self):
        from threadmem.core.config import Settings
        assert Settings(_env_file=None).get_ai_key("nope") is None
