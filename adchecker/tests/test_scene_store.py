import json

import pytest

from adchecker.app.catalog.scene_store import DEFAULT_SCENES, SCENE_STORE_KEY, SceneStore
from adchecker.tests.checking.helpers import make_scene, make_scene_record


def test_missing_store_falls_back_to_defaults(tmp_path):
    store = SceneStore(tmp_path / "scenes.json")

    scenes = store.load()

    assert [scene.name for scene in scenes] == ["バルコニー", "リビング", "外観", "キッチン"]


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        json.dumps({"other-key": []}),
        json.dumps({SCENE_STORE_KEY: [{"id": "1"}]}),
        json.dumps([1, 2, 3]),
    ],
)
def test_unreadable_store_falls_back_to_defaults(tmp_path, content):
    path = tmp_path / "scenes.json"
    path.write_text(content, encoding="utf-8")

    assert SceneStore(path).load() == DEFAULT_SCENES


def test_saved_scenes_are_read_back(tmp_path):
    store = SceneStore(tmp_path / "nested" / "scenes.json")
    scenes = [make_scene("a", "玄関"), make_scene_record("b")]

    store.save(scenes)

    assert store.load() == scenes
    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document[SCENE_STORE_KEY][1]["sceneType"] == "外観"


def test_duplicate_ids_are_rejected(tmp_path):
    store = SceneStore(tmp_path / "scenes.json")

    with pytest.raises(ValueError):
        store.save([make_scene("a"), make_scene("a")])

    assert not store.path.exists()
