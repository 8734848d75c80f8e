"""Evaluation prompt templates.

The template is read once; its raw text is part of the cache fingerprint so
editing the template invalidates earlier results.
"""

import logging
import re
from pathlib import Path

from loopsmith.config import Settings
from loopsmith.schemas.evaluation import RubricWeights

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

_OUTPUT_FORMAT = """\
{
  "score": number,
  "pass": boolean,
  "summary": string,
  "status": "excellent" | "good" | "needs_improvement" | "poor",
  "details": {
    "strengths": array,
    "issues": array,
    "improvements": array,
    "context_specific": object
  },
  "rubric_scores": object
}"""

_TEMPLATE_JA = """\
<task>
技術ドキュメントの評価を行います。

<context>
以下の内容が実装準備として十分な品質かを判定します。
プロジェクトディレクトリ: {{project_path}}
</context>

<constraints>
- 読み取りのみ可能（修正・作成・削除は禁止）
- 文字エンコーディングの警告や表示上の文字化けは無視してください
</constraints>

<evaluation_criteria>
最低限、以下の観点を評価してください：
- 実現性：現実的に作れる内容か
- 技術的妥当性：アプローチが適切か
- 情報の充足性：必要な詳細が記載されているか

評価観点の重み：
{{rubric}}

合格ライン: {{target_score}}点以上（10点満点）
</evaluation_criteria>

<output_format>
最後に以下の形式の JSON のみを出力してください：
""" + _OUTPUT_FORMAT + """
</output_format>

評価対象:
{{document}}
</task>"""

_TEMPLATE_EN = """\
<task>
Evaluate a technical document.

<context>
Decide whether the document is of sufficient quality to start implementation.
Project directory: {{project_path}}
</context>

<constraints>
- Read-only access: do not modify, create or delete any file.
- Ignore character-encoding warnings and garbled display output.
</constraints>

<evaluation_criteria>
Evaluate at least:
- Feasibility: can it realistically be implemented?
- Technical soundness: is the approach appropriate?
- Completeness: are the necessary details present?

Criterion weights:
{{rubric}}

Passing threshold: {{target_score}} (out of 10)
</evaluation_criteria>

<output_format>
Finish with a JSON object in exactly this shape:
""" + _OUTPUT_FORMAT + """
</output_format>

Document under evaluation:
{{document}}
</task>"""

BUILTIN_TEMPLATES = {"ja": _TEMPLATE_JA, "en": _TEMPLATE_EN}

_FILE_INSTRUCTIONS = {
    "ja": "評価対象ファイル: {path}\n\nこのファイルを読み込んで評価してください。",
    "en": "File to evaluate: {path}\n\nRead this file and evaluate it.",
}


class PromptBuilder:
    def __init__(self, settings: Settings) -> None:
        self._language = settings.evaluation_language
        self._template = self._load(settings.prompt_template_path)

    @property
    def template(self) -> str:
        return self._template

    def _load(self, path: Path | None) -> str:
        builtin = BUILTIN_TEMPLATES[self._language]
        if path is None:
            return builtin
        try:
            template = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(
                "Prompt template %s unreadable (%s), using built-in '%s' template",
                path,
                e,
                self._language,
            )
            return builtin
        logger.info("Loaded prompt template from %s", path)
        return template

    def build(
        self,
        *,
        content: str | None = None,
        document_path: str | None = None,
        target_score: float = 8.0,
        rubric: RubricWeights | None = None,
        project_path: str | None = None,
    ) -> str:
        """Substitute the request values into the template."""
        if document_path is not None:
            document = _FILE_INSTRUCTIONS[self._language].format(path=document_path)
        else:
            document = content or ""

        values = {
            "document": document,
            "document_path": document_path or "",
            "document_content": content or "",
            "target_score": f"{target_score:g}",
            "rubric": _format_rubric(rubric),
            "project_path": project_path or "-",
        }
        # 单次替换，文档正文里出现的占位符不会被二次展开
        return _PLACEHOLDER_RE.sub(
            lambda m: values.get(m.group(1), m.group(0)), self._template
        )


def _format_rubric(rubric: RubricWeights | None) -> str:
    weights = rubric or RubricWeights()
    return "\n".join(
        f"- {name}: {weight:.0%}" for name, weight in weights.model_dump().items()
    )
