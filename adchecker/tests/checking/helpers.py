import json
from typing import List, Optional

import httpx

from adchecker.app.catalog.client import ChecklistCatalogClient
from adchecker.app.checking.chat import ChatResponder
from adchecker.app.checking.checker import SingleItemChecker
from adchecker.app.events import CheckEvent
from adchecker.app.llm.executor import InlineFile
from adchecker.app.prompts import PromptBuilder
from adchecker.app.schemas.catalog import ChecklistItem, SceneRecord, SimpleScene
from adchecker.tests.fixtures.pdf_factory import PNG_1X1, advertisement_pdf


def make_checklist(count: int) -> List[ChecklistItem]:
    return [
        ChecklistItem(
            id=f"item-{index}",
            category="表示規約",
            check_item=f"チェック項目{index}",
            regulation=f"規約第{index + 1}条",
        )
        for index in range(count)
    ]


def make_scene(scene_id: str, name: Optional[str] = None) -> SimpleScene:
    return SimpleScene(
        id=scene_id,
        name=name or f"シーン{scene_id}",
        description="テスト用シーン",
        criteria="対象が明確に写っていること",
    )


def make_scene_record(scene_id: str = "r1") -> SceneRecord:
    return SceneRecord(
        id=scene_id,
        scene_type="外観",
        sub_scene="南側外観",
        category="植栽",
        check_item="植栽が手入れされていること",
        reason="公正取引",
        object_tags=("tree", "lawn"),
    )


def pdf_file() -> InlineFile:
    return InlineFile.from_bytes(advertisement_pdf(), "application/pdf")


def png_file() -> InlineFile:
    return InlineFile.from_bytes(PNG_1X1, "image/png")


def build_checker(executor) -> SingleItemChecker:
    return SingleItemChecker(executor=executor, prompts=PromptBuilder())


def build_chat(executor) -> ChatResponder:
    return ChatResponder(executor=executor, prompts=PromptBuilder())


# ----------------------------------------------------------------------
# Scripted model responses
# ----------------------------------------------------------------------

def detection_response(
    detected_type: str = "売買（新築）",
    confidence: float = 0.9,
    summary: str = "新築マンションの販売広告です。",
) -> str:
    payload = {
        "detectedType": detected_type,
        "confidence": confidence,
        "summary": summary,
    }
    return "判定結果は以下の通りです。\n" + json.dumps(payload, ensure_ascii=False)


def scene_response(
    is_appropriate: bool = True,
    confidence: float = 0.8,
    reason: str = "基準を満たしています。",
    suggestions: Optional[List[str]] = None,
) -> str:
    payload = {
        "isAppropriate": is_appropriate,
        "confidence": confidence,
        "reason": reason,
        "suggestions": suggestions or [],
    }
    return "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"


def review_response(*elements: dict) -> str:
    return json.dumps(list(elements), ensure_ascii=False)


def review_element(
    index: int,
    status: str = "OK",
    detail: str = "問題ありません。",
    location: Optional[str] = None,
) -> dict:
    return {
        "checklistIndex": index,
        "status": status,
        "detail": detail,
        "location": location,
    }


class ListEmitter:
    """Non-blocking test emitter that records every event."""

    def __init__(self):
        self.events: List[CheckEvent] = []

    async def emit(self, event: CheckEvent) -> None:
        self.events.append(event)

    def types(self):
        return [event.event_type for event in self.events]


def mock_catalog(checklist: List[ChecklistItem], calls: Optional[list] = None):
    """Catalog client backed by httpx.MockTransport serving ``checklist``."""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(dict(request.url.params))
        data = [item.model_dump(mode="json", by_alias=True) for item in checklist]
        return httpx.Response(200, json={"success": True, "data": data})

    return ChecklistCatalogClient(
        base_url="https://catalog.example.test/exec",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
