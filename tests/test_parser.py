import pytest

from loopsmith.exceptions import NoPayloadFound
from loopsmith.services.parser import (
    OutputParser,
    extract_sections,
    find_score,
    is_ready_for_implementation,
    strip_metadata,
)

ENGINE_TRANSCRIPT = """\
[2025-08-20T10:00:00] OpenAI Codex v0.20.0 (research preview)
--------
workdir: /tmp/project
model: gpt-5
provider: openai
approval: never
sandbox: danger-full-access
--------
[2025-08-20T10:00:01] User instructions:
<output_format>
{
  "score": number,
  "pass": boolean
}
</output_format>
[2025-08-20T10:00:05] thinking
**Reviewing the document**
[2025-08-20T10:01:00] codex
{"score": 8.5, "pass": true, "summary": "Ready to build", "details": {"strengths": ["clear"], "issues": [], "improvements": [], "context_specific": {}}}
[2025-08-20T10:01:01] tokens used: 1234
"""


@pytest.fixture
def parser() -> OutputParser:
    return OutputParser()


class TestStripMetadata:
    def test_removes_banner_lines(self):
        cleaned = strip_metadata(ENGINE_TRANSCRIPT)
        assert "workdir:" not in cleaned
        assert "tokens used" not in cleaned
        assert "**Reviewing the document**" not in cleaned
        assert '"score": 8.5' in cleaned

    def test_keeps_lines_inside_json(self):
        output = '{\n"summary": "x",\nmodel: not metadata here\n}'
        assert "model: not metadata here" in strip_metadata(output)

    def test_keeps_bold_label_with_value(self):
        assert strip_metadata("**Score:** 7") == "**Score:** 7"


class TestJsonExtraction:
    def test_noise_around_json(self, parser: OutputParser):
        result = parser.parse('noise...\n{"score":9.2,"pass":true}\nmore noise')
        assert result.fields["score"] == 9.2
        assert result.fields["pass"] is True
        assert result.parsing_method == "json"

    def test_engine_transcript_uses_answer_after_marker(self, parser: OutputParser):
        result = parser.parse(ENGINE_TRANSCRIPT)
        assert result.fields["score"] == 8.5
        assert result.fields["summary"] == "Ready to build"
        assert result.parsing_method == "json"

    def test_prefers_last_object_with_evaluation_fields(self, parser: OutputParser):
        output = (
            'chatter {"step": 1, "note": "planning"}\n'
            '{"score": 3.0, "pass": false}\n'
            'final answer {"score": 7.5, "pass": false, "summary": "final"}\n'
            'trailing {"tokens": 42}'
        )
        result = parser.parse(output)
        assert result.fields["score"] == 7.5
        assert result.fields["summary"] == "final"

    def test_summary_only_object_counts_as_evaluation(self, parser: OutputParser):
        result = parser.parse('{"summary": "only a summary"} {"other": 1}')
        assert result.fields["summary"] == "only a summary"
        assert "other" not in result.fields

    def test_objects_without_evaluation_fields_are_ignored(self, parser: OutputParser):
        assert parser.extract_json('exec {"cmd": ["cat", "doc.md"]}', "") is None

    def test_conclusion_fills_summary(self, parser: OutputParser):
        result = parser.parse('{"score": 6, "conclusion": "Mostly fine"}')
        assert result.fields["summary"] == "Mostly fine"

    def test_marker_without_json_falls_back_to_whole_text(self, parser: OutputParser):
        output = '{"score": 4.0}\n[2025-08-20T10:01:00] codex\nno json here\n'
        result = parser.parse(output)
        assert result.fields["score"] == 4.0


class TestStructuredText:
    def test_bold_score_label(self, parser: OutputParser):
        result = parser.parse("## Result\n**Score:** 7\n")
        assert result.fields["score"] == 7.0
        assert result.parsing_method == "structured_text"

    def test_japanese_score_and_readiness(self, parser: OutputParser):
        output = "評価結果\nスコア: 6.5\nこのドキュメントは実装に移れる状態です。\n"
        result = parser.parse(output)
        assert result.fields["score"] == 6.5
        assert result.fields["ready_for_implementation"] is True
        assert result.parsing_method == "structured_text"

    def test_sections_and_bullets(self):
        text = "結論:\n実装可能です。\n\n根拠:\n設計が明確。\n- 難易度: 中\n"
        sections = extract_sections(text)
        assert sections["結論"] == "実装可能です。"
        assert sections["根拠"].startswith("設計が明確。")
        assert sections["難易度"] == "中"

    def test_detail_sections_become_lists(self, parser: OutputParser):
        output = "Score: 7\nStrengths:\n- clear goals\n- good examples\nIssues:\n- no error handling\n"
        result = parser.parse(output)
        assert result.fields["details"]["strengths"] == ["clear goals", "good examples"]
        assert result.fields["details"]["issues"] == ["no error handling"]
        assert result.fields["score"] == 7.0

    def test_json_values_are_never_overwritten(self, parser: OutputParser):
        output = '{"score": 9, "pass": true}\nScore: 3\nConclusion:\nLooks weak'
        result = parser.parse(output)
        assert result.fields["score"] == 9
        assert result.fields["conclusion"] == "Looks weak"
        assert "score" in result.json_fields
        assert "conclusion" in result.text_fields
        assert result.parsing_method == "hybrid"


class TestScorePatterns:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("総合評価スコア：7.5", 7.5),
            ("score: 8", 8.0),
            ("Overall Score: 9.1", 9.1),
            ("评分: 6", 6.0),
            ("I would rate this 6.5/10 overall", 6.5),
            ("**Score:** 7", 7.0),
            ("**スコア**: 6.5", 6.5),
            ("**総合スコア：** 6.5", 6.5),
            ("**评分**：8", 8.0),
        ],
    )
    def test_detects_score(self, text: str, expected: float):
        assert find_score(text) == expected

    def test_ignores_out_of_range(self):
        assert find_score("score: 85") is None

    def test_no_score(self):
        assert find_score("nothing to see") is None


class TestReadiness:
    @pytest.mark.parametrize(
        "text",
        ["実装可能と判断します", "実装に移れます", "Ready for implementation.", "We can proceed with implementation"],
    )
    def test_affirmative(self, text: str):
        assert is_ready_for_implementation(text)

    @pytest.mark.parametrize("text", ["実装不可能", "not ready for implementation", "needs more work"])
    def test_not_affirmative(self, text: str):
        assert not is_ready_for_implementation(text)


class TestFailures:
    def test_no_payload(self, parser: OutputParser):
        with pytest.raises(NoPayloadFound):
            parser.parse("the engine said nothing useful")

    def test_strict_mode_requires_json(self, parser: OutputParser):
        with pytest.raises(NoPayloadFound):
            parser.parse("スコア: 6.5", mode="strict")

    def test_strict_mode_ignores_structured_text(self, parser: OutputParser):
        result = parser.parse('Conclusion:\nok\n{"score": 8}', mode="strict")
        assert result.parsing_method == "json"
        assert "conclusion" not in result.fields

    def test_engine_chatter_only(self, parser: OutputParser):
        output = (
            "[2025-08-20T10:01:00] codex\n"
            'exec {"cmd": ["cat", "doc.md"]}\n'
            "I could not finish.\n"
        )
        with pytest.raises(NoPayloadFound):
            parser.parse(output)

    def test_readiness_alone_is_not_an_evaluation(self, parser: OutputParser):
        with pytest.raises(NoPayloadFound):
            parser.parse("Looks ready for implementation to me.")

    def test_failure_keeps_raw_excerpt(self, parser: OutputParser):
        with pytest.raises(NoPayloadFound) as exc_info:
            parser.parse("x" * 1000)
        assert len(exc_info.value.raw_excerpt) == 500
