# settings.py
# Runtime configuration for the game service and the CLI driver.

from typing import Literal, Optional
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "GAME2048_"


class GameSettings(BaseModel):
    """Settings shared by every game session of a process."""
    size: int = Field(
        default=4,
        gt=1,  # Board size must be at least 2x2
        description="Size of the N x N game board."
    )
    win_tile: int = Field(
        default=2048,
        gt=2,
        description="The tile value to achieve for winning the game."
    )
    four_probability: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Probability that a spawned tile is a 4 instead of a 2."
    )
    best_score_path: Optional[str] = Field(
        default=None,
        description="JSON file for the best score; kept in memory when unset."
    )
    rate_limit: str = Field(default="100/minute", description="Per-client request limit for the API.")
    max_games: int = Field(default=1000, gt=0, description="Games kept by the API before the least recently used is dropped.")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")

    @field_validator("win_tile")
    @classmethod
    def _win_tile_is_power_of_two(cls, value: int) -> int:
        if value & (value - 1):
            raise ValueError("win_tile must be a power of two")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value


def load_settings(**overrides) -> GameSettings:
    """
    Builds settings from GAME2048_* environment variables (a .env file is
    honoured) with keyword overrides taking precedence.
    Raises:
        pydantic.ValidationError: If a value is out of range.
    """
    load_dotenv()
    values = {}
    for name in GameSettings.model_fields:
        raw = os.getenv(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            values[name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})
    return GameSettings(**values)
