"""Tests for settings and logging setup."""

import pytest
from loguru import logger

from agentboard.config import ConditionPolicy, DispatchSettings, SequentialFold
from agentboard.utils.logging import setup_logging


class TestDispatchSettings:
    def test_defaults(self):
        settings = DispatchSettings()
        assert settings.condition_timeout == 1.0
        assert settings.parser_timeout == 2.0
        assert settings.condition_policy == ConditionPolicy.fail_closed
        assert settings.sequential_fold == SequentialFold.replace

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AGENTBOARD_CONDITION_TIMEOUT", "0.25")
        monkeypatch.setenv("AGENTBOARD_MODEL_CALL_ATTEMPTS", "5")
        monkeypatch.setenv("AGENTBOARD_CONDITION_POLICY", "raise")
        monkeypatch.setenv("AGENTBOARD_SEQUENTIAL_FOLD", "append")
        settings = DispatchSettings.from_env()
        assert settings.condition_timeout == 0.25
        assert settings.model_call_attempts == 5
        assert settings.condition_policy == ConditionPolicy.raise_error
        assert settings.sequential_fold == SequentialFold.append

    def test_attempts_at_least_one(self, monkeypatch):
        monkeypatch.setenv("AGENTBOARD_MODEL_CALL_ATTEMPTS", "0")
        assert DispatchSettings.from_env().model_call_attempts == 1

    def test_invalid_policy(self, monkeypatch):
        monkeypatch.setenv("AGENTBOARD_CONDITION_POLICY", "sometimes")
        with pytest.raises(ValueError):
            DispatchSettings.from_env()

    def test_with_overrides_returns_copy(self):
        settings = DispatchSettings()
        changed = settings.with_overrides(parser_timeout=5.0)
        assert changed.parser_timeout == 5.0
        assert settings.parser_timeout == 2.0


class TestLogging:
    def test_dispatch_id_is_bound(self, tmp_path):
        log_file = tmp_path / "agentboard.log"
        setup_logging("DEBUG", str(log_file))
        logger.bind(dispatch_id="d-42").info("dispatching")
        logger.info("no dispatch")
        logger.complete()

        text = log_file.read_text()
        assert "dispatch_id=d-42" in text
        assert "dispatch_id=-" in text
