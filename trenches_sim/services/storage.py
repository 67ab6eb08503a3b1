"""JSON persistence for player state, one file per fixed storage key."""

import json
import os
from pathlib import Path
from typing import Optional, Union

from trenches_sim.utils.json_safety import sanitize_floats
from trenches_sim.utils.logger import get_logger

logger = get_logger("storage")

PORTFOLIO_KEY = "trenches_portfolio"
QUESTS_KEY = "trenches_quests"


class JsonStore:
    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable %s: %s", path, e)
            path.unlink(missing_ok=True)
            return None
        if not isinstance(data, dict):
            logger.warning("Discarding %s: expected a JSON object", path)
            path.unlink(missing_ok=True)
            return None
        return data

    def save(self, key: str, data: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(sanitize_floats(data), ensure_ascii=False, allow_nan=False),
            encoding="utf-8",
        )
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
