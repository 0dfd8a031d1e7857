# storage.py
# Best-score persistence. Storage problems never reach gameplay: a failed load
# reads as 0 and a failed save is only logged.

from pathlib import Path
from typing import Protocol, Union
import json
import logging

logger = logging.getLogger(__name__)

BEST_SCORE_KEY = "2048-best-score"


class BestScoreStore(Protocol):
    """Single-integer key-value capability used by a game session."""

    def load_best_score(self) -> int:
        ...

    def save_best_score(self, score: int) -> None:
        ...


class InMemoryBestScoreStore:
    """Keeps the best score for the lifetime of the process."""

    def __init__(self, initial: int = 0):
        self._data = {BEST_SCORE_KEY: initial}

    def load_best_score(self) -> int:
        return self._data.get(BEST_SCORE_KEY, 0)

    def save_best_score(self, score: int) -> None:
        # never lowered: several sessions may write to one store
        self._data[BEST_SCORE_KEY] = max(self.load_best_score(), int(score))


class JsonFileBestScoreStore:
    """
    Stores the best score in a small JSON document: {"2048-best-score": <int>}.
    Other keys already in the file are preserved on save, and a save never
    lowers the stored value.
    """

    def __init__(self, path: Union[str, Path], key: str = BEST_SCORE_KEY):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def load_best_score(self) -> int:
        try:
            value = int(self._read().get(self.key, 0))
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Could not load best score from %s: %s", self.path, e)
            return 0
        return max(value, 0)

    def save_best_score(self, score: int) -> None:
        try:
            try:
                data = self._read()
            except ValueError:
                data = {}
            try:
                current = int(data.get(self.key, 0))
            except (ValueError, TypeError):
                current = 0
            data[self.key] = max(current, int(score))
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning("Could not save best score to %s: %s", self.path, e)
