import pytest

from backend.lambdas.shared import config
from backend.lambdas.shared.exceptions import ConfigurationError, GenerationError


@pytest.mark.parametrize("raw, expected", [("1", True), ("Yes", True), ("off", False), ("", False)])
def test_get_bool_env_parses_flags(monkeypatch: pytest.MonkeyPatch, raw, expected):
    monkeypatch.setenv("FEATURE_FLAG", raw)

    assert config.get_bool_env("FEATURE_FLAG") is expected


def test_get_bool_env_default_and_invalid(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("FEATURE_FLAG", raising=False)
    assert config.get_bool_env("FEATURE_FLAG", True) is True

    monkeypatch.setenv("FEATURE_FLAG", "sometimes")
    with pytest.raises(ConfigurationError):
        config.get_bool_env("FEATURE_FLAG")


def test_get_list_env_splits_and_strips(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MODEL_LIST", " gpt-4o , ,claude-3-haiku,")

    assert config.get_list_env("MODEL_LIST") == ("gpt-4o", "claude-3-haiku")


def test_get_list_env_uses_default_when_blank(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MODEL_LIST", "  ")

    assert config.get_list_env("MODEL_LIST", ("a",)) == ("a",)


def test_get_int_env_rejects_garbage(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GENERATION_MAX_TOKENS", "lots")

    with pytest.raises(ConfigurationError, match="must be an integer"):
        config.get_int_env("GENERATION_MAX_TOKENS", 4096)


def test_generation_error_lists_attempts():
    class Attempt:
        def __init__(self, model_id, reason):
            self.model_id = model_id
            self.reason = reason

    error = GenerationError("AI generation failed", [Attempt("gpt-4o", "HTTP 500"), Attempt("command-r", "timeout")])

    assert str(error) == "AI generation failed (gpt-4o: HTTP 500; command-r: timeout)"
    assert len(error.attempts) == 2
