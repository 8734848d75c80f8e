"""Engine output parser.

The engine prints human-readable text with an optional embedded JSON object
and no guaranteed schema. Two independent extractors recover fields:

1. JSON extraction: brace-matching scan after the engine output marker,
   falling back to the whole cleaned text.
2. Structured-text extraction: ``Label:`` sections, ``- label: value``
   bullets, score regexes and implementation-readiness phrases.

JSON values always win; structured text only fills the gaps.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from loopsmith.exceptions import NoPayloadFound
from loopsmith.utils.llm_parse import iter_json_objects

logger = logging.getLogger(__name__)

EvaluationMode = Literal["flexible", "strict"]

# 引擎 banner / 元数据行（时间戳、分隔线、环境回显）
_METADATA_PATTERNS = (
    re.compile(r"^\[\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}"),
    re.compile(r"^-{8,}\s*$"),
    re.compile(
        r"^(?:workdir|model|provider|approval|sandbox|reasoning effort|reasoning summaries):"
    ),
    re.compile(r"^User instructions:"),
    re.compile(r"^thinking\s*$"),
    re.compile(r"^\*\*[^*]+\*\*\s*$"),
    re.compile(r"^tokens used:"),
    re.compile(r"^Reading prompt from stdin"),
    re.compile(r"^OpenAI Codex"),
)

_SECTION_HEADER_RE = re.compile(r"^[ \t]*#*[ \t]*([^：:\n{}\"]+?)[ \t]*[：:][ \t]*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^[ \t]*[-・■□◆◇*][ \t]*([^：:\n]+?)[ \t]*[：:][ \t]*(.+)$", re.MULTILINE)
_LIST_ITEM_RE = re.compile(r"^[ \t]*(?:[-・■□◆◇*]|\d+[.)])[ \t]*")

_SCORE_PATTERNS = (
    re.compile(
        r"(?:総合)?(?:評価)?スコア\**[ \t]*[：:][ \t]*\**[ \t]*(\d+(?:\.\d+)?)"
    ),
    re.compile(
        r"(?:overall[ \t]+)?score\**[ \t]*[：:][ \t]*\**[ \t]*(\d+(?:\.\d+)?)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:评分|得分)\**[ \t]*[：:][ \t]*\**[ \t]*(\d+(?:\.\d+)?)"),
    re.compile(r"(\d+(?:\.\d+)?)[ \t]*/[ \t]*10(?![\d.])"),
)

_READINESS_PATTERNS = (
    re.compile(r"実装に移れ(?:る|ます)"),
    re.compile(r"実装可能"),
    re.compile(r"(?<!not )ready\s+for\s+implementation", re.IGNORECASE),
    re.compile(r"(?<!not )(?<!cannot )can\s+proceed\s+with\s+implementation", re.IGNORECASE),
)

# 字段名 -> 可能出现的 section 标题（小写比较）
_TEXT_SECTIONS = {
    "conclusion": ("結論", "conclusion", "総評", "summary"),
    "rationale": ("根拠", "rationale"),
    "analysis": ("分析", "現状分析", "analysis"),
    "recommendations": ("推奨事項", "改善提案", "recommendations"),
}
_DETAIL_SECTIONS = {
    "strengths": ("強み", "良い点", "strengths"),
    "issues": ("問題点", "課題", "issues"),
    "improvements": ("改善点", "improvements"),
}

# 至少包含其中之一才视为评估结果（JSON 候选与最终合并结果都适用）
_EVALUATION_FIELDS = (
    "score",
    "pass",
    "passed",
    "summary",
    "status",
    "details",
    "rubric_scores",
)


@dataclass
class ParseResult:
    """Fields recovered from one engine output, before normalization."""

    fields: dict[str, Any] = field(default_factory=dict)
    parsing_method: str = ""
    json_fields: set[str] = field(default_factory=set)
    text_fields: set[str] = field(default_factory=set)
    sections: dict[str, str] = field(default_factory=dict)

    def has(self, name: str) -> bool:
        return not _is_empty(self.fields.get(name))


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _brace_delta(line: str) -> int:
    delta = 0
    in_string = False
    escaped = False
    for char in line:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            delta += 1
        elif char == "}":
            delta -= 1
    return delta


def strip_metadata(output: str) -> str:
    """Drop engine banner and metadata lines.

    Lines inside an open JSON object are always kept, even when they happen
    to start like a metadata line.
    """
    kept: list[str] = []
    depth = 0
    for line in output.splitlines():
        if depth <= 0 and any(p.match(line) for p in _METADATA_PATTERNS):
            continue
        kept.append(line)
        depth = max(depth + _brace_delta(line), 0)
    return "\n".join(kept).strip()


def extract_sections(text: str) -> dict[str, str]:
    """Collect ``Label:`` header sections and ``- label: value`` bullets."""
    sections: dict[str, str] = {}
    headers = list(_SECTION_HEADER_RE.finditer(text))
    for i, match in enumerate(headers):
        name = match.group(1).strip()
        end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
        body = text[match.end() : end].strip()
        if name and body:
            sections[name] = body

    for match in _BULLET_RE.finditer(text):
        key = match.group(1).strip()
        if key and key not in sections:
            sections[key] = match.group(2).strip()
    return sections


def find_score(text: str) -> float | None:
    for pattern in _SCORE_PATTERNS:
        for match in pattern.finditer(text):
            value = float(match.group(1))
            if 0.0 <= value <= 10.0:
                return value
    return None


def is_ready_for_implementation(text: str) -> bool:
    return any(p.search(text) for p in _READINESS_PATTERNS)


def _lookup(sections: dict[str, str], aliases: tuple[str, ...]) -> str | None:
    lowered = {k.lower(): v for k, v in sections.items()}
    for alias in aliases:
        if alias.lower() in lowered:
            return lowered[alias.lower()]
    return None


def _to_list(block: str) -> list[str]:
    items = []
    for line in block.splitlines():
        item = _LIST_ITEM_RE.sub("", line).strip()
        if item:
            items.append(item)
    return items


def parse_structured_text(text: str) -> tuple[dict[str, Any], dict[str, str]]:
    """Recover evaluation fields from labeled sections and regex patterns."""
    result: dict[str, Any] = {}
    sections = extract_sections(text)

    for name, aliases in _TEXT_SECTIONS.items():
        value = _lookup(sections, aliases)
        if value:
            result[name] = value
    if "conclusion" in result:
        result["summary"] = result["conclusion"]

    details = {}
    for name, aliases in _DETAIL_SECTIONS.items():
        value = _lookup(sections, aliases)
        if value:
            details[name] = _to_list(value)
    if details:
        result["details"] = details

    if is_ready_for_implementation(text):
        result["ready_for_implementation"] = True

    score = find_score(text)
    if score is not None:
        result["score"] = score
    return result, sections


class OutputParser:
    def __init__(self, output_marker: str = "] codex\n") -> None:
        self._marker = output_marker

    def parse(self, raw_output: str, *, mode: EvaluationMode = "flexible") -> ParseResult:
        cleaned = strip_metadata(raw_output)
        result = ParseResult()

        payload = self.extract_json(raw_output, cleaned)
        if payload is not None:
            for key, value in payload.items():
                result.fields[key] = value
                result.json_fields.add(key)
            if not result.has("summary") and isinstance(payload.get("conclusion"), str):
                result.fields["summary"] = payload["conclusion"]
                result.json_fields.add("summary")

        if mode == "strict":
            if payload is None:
                raise NoPayloadFound("No JSON object found in engine output", raw_output)
            result.parsing_method = "json"
            return result

        # 有 marker 时只看最终回答部分，避免引擎回显的 prompt 干扰
        answer = self._after_marker(raw_output)
        text_source = strip_metadata(answer) if answer is not None else cleaned
        text_fields, result.sections = parse_structured_text(text_source)
        for key, value in text_fields.items():
            if not result.has(key):
                result.fields[key] = value
                result.text_fields.add(key)

        if not any(result.has(name) for name in _EVALUATION_FIELDS):
            # 只有命令回显之类的杂项时不能默认成 5 分，交给重试
            raise NoPayloadFound(
                "Neither JSON nor structured text carries an evaluation field", raw_output
            )

        if result.json_fields and result.text_fields:
            result.parsing_method = "hybrid"
        elif result.json_fields:
            result.parsing_method = "json"
        else:
            result.parsing_method = "structured_text"

        logger.info(
            "Parsed engine output via %s (json=%s, text=%s)",
            result.parsing_method,
            sorted(result.json_fields),
            sorted(result.text_fields),
        )
        return result

    def extract_json(self, raw_output: str, cleaned: str) -> dict[str, Any] | None:
        """Find the evaluation object, looking after the last marker first."""
        answer = self._after_marker(raw_output)
        if answer is not None:
            found = _pick_candidate(answer)
            if found is not None:
                return found
        return _pick_candidate(cleaned)

    def _after_marker(self, raw_output: str) -> str | None:
        if not self._marker:
            return None
        idx = raw_output.rfind(self._marker)
        if idx < 0:
            return None
        return raw_output[idx + len(self._marker) :]


def _pick_candidate(text: str) -> dict[str, Any] | None:
    """Return the last object carrying evaluation fields, ignoring engine chatter."""
    candidates = list(iter_json_objects(text))
    for candidate in reversed(candidates):
        if any(k in candidate for k in _EVALUATION_FIELDS):
            return candidate
    if candidates:
        logger.debug(
            "Ignoring %d JSON object(s) without any of %s", len(candidates), _EVALUATION_FIELDS
        )
    return None
