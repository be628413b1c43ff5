"""
Local scene store.

User-defined scenes are persisted in a small JSON key-value file under a
fixed key. Reads are best-effort: a missing or unreadable store falls
back to the built-in default scenes instead of failing.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from adchecker.app.schemas.catalog import Scene, SimpleScene

logger = logging.getLogger(__name__)


SCENE_STORE_KEY = "realestate-scenes"

DEFAULT_SCENES: List[SimpleScene] = [
    SimpleScene(
        id="1",
        name="バルコニー",
        description="バルコニー・ベランダの写真",
        criteria="バルコニーが明確に写っていること、洗濯物や私物が映り込んでいないこと",
    ),
    SimpleScene(
        id="2",
        name="リビング",
        description="リビング・居間の写真",
        criteria="部屋全体が見渡せること、明るく清潔感があること",
    ),
    SimpleScene(
        id="3",
        name="外観",
        description="建物外観の写真",
        criteria="建物全体が写っていること、天候が良いこと",
    ),
    SimpleScene(
        id="4",
        name="キッチン",
        description="キッチン・台所の写真",
        criteria="キッチン設備が確認できること、清潔感があること",
    ),
]

_SCENES_ADAPTER = TypeAdapter(List[Scene])


class SceneStore:
    """JSON-file backed store for the user's scene set."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[Scene]:
        if not self._path.exists():
            return list(DEFAULT_SCENES)

        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
            raw_scenes = document[SCENE_STORE_KEY]
            scenes = _SCENES_ADAPTER.validate_python(raw_scenes)
        except (OSError, ValueError, KeyError, TypeError, PydanticValidationError) as exc:
            logger.warning(
                "Scene store %s unreadable (%s); using default scenes",
                self._path,
                type(exc).__name__,
            )
            return list(DEFAULT_SCENES)

        return scenes

    def save(self, scenes: Sequence[Scene]) -> List[Scene]:
        """
        Replace the stored scene set.

        Scene ids must be unique. The file is replaced atomically.
        """
        scenes = list(scenes)
        ids = [scene.id for scene in scenes]
        if len(ids) != len(set(ids)):
            raise ValueError("Scene ids must be unique")

        document = {
            SCENE_STORE_KEY: _SCENES_ADAPTER.dump_python(
                scenes, mode="json", by_alias=True
            ),
        }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(document, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._path)

        logger.info("Saved %d scenes to %s", len(scenes), self._path)
        return scenes
