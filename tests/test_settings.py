import pytest
from pydantic import ValidationError

from settings import GameSettings, load_settings


def test_defaults():
    settings = GameSettings()
    assert settings.size == 4
    assert settings.win_tile == 2048
    assert settings.four_probability == 0.1
    assert settings.best_score_path is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GAME2048_SIZE", "5")
    monkeypatch.setenv("GAME2048_WIN_TILE", "512")
    monkeypatch.setenv("GAME2048_LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.size == 5
    assert settings.win_tile == 512
    assert settings.log_level == "DEBUG"


def test_keyword_overrides_win(monkeypatch):
    monkeypatch.setenv("GAME2048_SIZE", "5")
    assert load_settings(size=3, win_tile=None).size == 3


@pytest.mark.parametrize("field, value", [
    ("size", 1),
    ("win_tile", 100),
    ("win_tile", 2),
    ("four_probability", 1.5),
])
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        GameSettings(**{field: value})


def test_log_level_is_restricted(monkeypatch):
    monkeypatch.setenv("GAME2048_LOG_LEVEL", "verbose")
    with pytest.raises(ValidationError):
        load_settings()
    assert GameSettings(log_level="warning").log_level == "WARNING"


def test_max_games_must_be_positive():
    with pytest.raises(ValidationError):
        GameSettings(max_games=0)
