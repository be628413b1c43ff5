import pytest

from adchecker.app.prompts import PromptBuilder, PromptKind
from adchecker.app.prompts.builder import ChatContext, TypeDetectionContext
from adchecker.app.schemas.catalog import AdType
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    ComplianceResult,
    ComplianceStatus,
)
from adchecker.tests.checking.helpers import (
    make_checklist,
    make_scene,
    make_scene_record,
)


@pytest.fixture(scope="module")
def builder():
    return PromptBuilder()


def test_prompts_are_deterministic(builder):
    items = make_checklist(3)

    first = builder.checklist_review(AdType.SALE_NEW, items)
    second = builder.checklist_review(AdType.SALE_NEW, items)

    assert first == second


def test_type_detection_lists_every_ad_type(builder):
    prompt = builder.type_detection()

    assert prompt.kind == PromptKind.TYPE_DETECTION
    assert prompt.expects_json
    for ad_type in AdType:
        assert f"- {ad_type.value}" in prompt.text
    assert '"detectedType"' in prompt.text


def test_checklist_numbering_is_zero_based_in_insertion_order(builder):
    items = make_checklist(3)

    prompt = builder.checklist_review(AdType.SALE_USED, items)
    lines = [line for line in prompt.text.splitlines() if "[ID:" in line]

    assert lines == [
        "0. [ID:item-0][表示規約] チェック項目0 (根拠: 規約第1条)",
        "1. [ID:item-1][表示規約] チェック項目1 (根拠: 規約第2条)",
        "2. [ID:item-2][表示規約] チェック項目2 (根拠: 規約第3条)",
    ]
    assert "0〜2" in prompt.text
    assert "要素数は 3 個" in prompt.text
    assert AdType.SALE_USED.value in prompt.text


def test_checklist_review_requires_items(builder):
    with pytest.raises(ValueError):
        builder.checklist_review(AdType.SALE_NEW, [])


def test_scene_prompt_tailors_points_to_file_kind(builder):
    scene = make_scene("1", "バルコニー")

    pdf_prompt = builder.scene_check(scene, is_pdf=True)
    image_prompt = builder.scene_check(scene, is_pdf=False)

    assert "添付されたPDF広告" in pdf_prompt.text
    assert "表示の正確性" in pdf_prompt.text
    assert "添付された画像" in image_prompt.text
    assert "明るさ、構図、清潔感" in image_prompt.text
    assert "- シーン名: バルコニー" in image_prompt.text
    assert '"isAppropriate"' in image_prompt.text


def test_tabular_scene_projects_every_column(builder):
    prompt = builder.scene_check(make_scene_record(), is_pdf=False)

    for fragment in (
        "- シーン種別: 外観",
        "- サブシーン: 南側外観",
        "- カテゴリ: 植栽",
        "- チェック項目: 植栽が手入れされていること",
        "- 根拠: 公正取引",
        "- AI用タグ: tree, lawn",
        "- 補足: なし",
    ):
        assert fragment in prompt.text
    assert "AI用タグ（tree, lawn）" in prompt.text


def test_chat_prompt_flattens_results_one_line_each(builder):
    item = make_checklist(1)[0]
    results = [
        AppropriatenessResult(
            scene=make_scene("1", "外観"),
            is_appropriate=False,
            confidence=0.4,
            reason="建物が切れています",
        ),
        ComplianceResult(
            item=item,
            status=ComplianceStatus.NEEDS_REVIEW,
            detail="価格表示が不明瞭",
        ),
    ]

    prompt = builder.chat_answer(results, "どこを直せばいい？")

    assert prompt.kind == PromptKind.CHAT_ANSWER
    assert not prompt.expects_json
    assert "- 外観: 要改善 (建物が切れています)" in prompt.text
    assert "- チェック項目0: 要確認 (価格表示が不明瞭)" in prompt.text
    assert "どこを直せばいい？" in prompt.text


def test_chat_prompt_without_results(builder):
    prompt = builder.chat_answer([], "質問")

    assert "（判定結果なし）" in prompt.text


def test_build_rejects_mismatched_context(builder):
    with pytest.raises(TypeError):
        builder.build(PromptKind.CHAT_ANSWER, TypeDetectionContext())


def test_build_accepts_explicit_context(builder):
    prompt = builder.build(
        PromptKind.CHAT_ANSWER,
        ChatContext(question="こんにちは"),
    )

    assert "こんにちは" in prompt.text


def test_missing_template_fails_at_construction(tmp_path):
    with pytest.raises(RuntimeError):
        PromptBuilder(templates_dir=tmp_path)
