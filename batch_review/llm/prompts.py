"""
Review context construction and prompt rendering.

A review context carries the project guidelines, review rules and the
diffs of one call. The base context is built once per run; each batch
reuses its guideline and rule sections and swaps in its own diffs.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from batch_review.analysis.diff_parser import Hunk
from batch_review.llm.schemas import Guideline, ReviewRule

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an expert code reviewer. Review only the changed lines of the
diffs you are given, together with their immediate context, and apply the project's
guidelines and rules.

**Severity Levels:**
- error: Logic bugs, security vulnerabilities, data loss risks
- warning: Code smells, potential issues, performance concerns
- info: Suggestions, best practices, documentation improvements

Respond with valid JSON only.
"""

REVIEW_INSTRUCTIONS = """Please review the provided code changes according to the project guidelines and rules.
For each issue found, provide:
1. File path and line number(s)
2. Issue description
3. Severity level (error/warning/info)
4. Suggested fix or improvement
5. Rule ID (if applicable)

Focus only on the changed lines and their immediate context.
Provide constructive feedback that helps improve code quality.
Return results in JSON format with the following structure:
{
  "findings": [
    {
      "file": "path/to/file",
      "line": 123,
      "end_line": 125,
      "severity": "warning",
      "message": "Issue description",
      "suggestion": "Suggested fix",
      "rule_id": "rule-id",
      "category": "category-name"
    }
  ],
  "summary": "One paragraph overview of the changes"
}"""

# Truncation limits for compact sections
COMPACT_GUIDELINE_CHARS = 500
COMPACT_RULE_DESCRIPTION_CHARS = 100


@dataclass(frozen=True)
class ContextMetadata:
    """Counts describing what a context covers."""
    total_files: int = 0
    total_hunks: int = 0
    total_lines: int = 0
    rule_count: int = 0
    guideline_count: int = 0


@dataclass(frozen=True)
class BatchInfo:
    """Identifies the batch a context was built for."""
    batch_id: str
    priority: str
    estimated_tokens: int
    files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReviewContext:
    """Everything a review port needs to review one set of diffs."""
    project_guidelines: str
    review_rules: str
    diffs: str
    metadata: ContextMetadata = ContextMetadata()
    custom_prompt_template: Optional[str] = None
    batch_info: Optional[BatchInfo] = None


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + '...'


class ContextBuilder:
    """Builds review contexts and renders them into prompt text."""

    def build_context(
        self,
        guidelines: Sequence[Guideline],
        rules: Sequence[ReviewRule],
        hunks: Sequence[Hunk],
        custom_prompt_template: Optional[str] = None,
        compact: bool = False,
        max_tokens: int = 100000,
    ) -> ReviewContext:
        """
        Build the base review context for a run.

        Args:
            guidelines: Loaded project guidelines
            rules: Loaded review rules
            hunks: Every hunk under review
            custom_prompt_template: Optional template with ``{{PLACEHOLDER}}`` slots
            compact: Truncate guidelines and rule descriptions
            max_tokens: Size above which a warning is logged

        Returns:
            ReviewContext: The base context
        """
        context = ReviewContext(
            project_guidelines=self.build_guidelines_section(guidelines, compact),
            review_rules=self.build_rules_section(rules, compact),
            diffs=self.build_diffs_section(hunks, compact),
            metadata=ContextMetadata(
                total_files=len({h.file_path for h in hunks}),
                total_hunks=len(hunks),
                total_lines=sum(h.new_line_count for h in hunks),
                rule_count=len(rules),
                guideline_count=len(guidelines),
            ),
            custom_prompt_template=custom_prompt_template or None,
        )

        estimated = self.estimate_tokens(context)
        if estimated > max_tokens:
            logger.warning(
                f"Context size ({estimated} tokens) exceeds limit ({max_tokens}). "
                "Consider splitting into batches."
            )

        logger.info(
            f"Context built: {context.metadata.total_files} files, "
            f"{context.metadata.total_hunks} hunks, {len(rules)} rules, "
            f"{len(guidelines)} guidelines"
        )
        return context

    def build_context_for_hunks(
        self,
        base: ReviewContext,
        hunks: Sequence[Hunk],
        batch_info: Optional[BatchInfo] = None,
        compact: bool = True,
    ) -> ReviewContext:
        """
        Derive a batch context from the base context.

        Guidelines, rules and the custom template come from ``base``;
        diffs and metadata are rebuilt from ``hunks``.
        """
        return replace(
            base,
            diffs=self.build_diffs_section(hunks, compact),
            metadata=replace(
                base.metadata,
                total_files=len({h.file_path for h in hunks}),
                total_hunks=len(hunks),
                total_lines=sum(h.new_line_count for h in hunks),
            ),
            batch_info=batch_info,
        )

    def render_prompt(self, context: ReviewContext, include_metadata: bool = True) -> str:
        """
        Render a context into the user prompt sent to the model.

        Args:
            context: Context to render
            include_metadata: Prepend the metadata section

        Returns:
            str: Prompt text
        """
        if context.custom_prompt_template:
            return self.apply_custom_template(context, include_metadata)

        sections = []
        if include_metadata:
            sections.append(self.build_metadata_section(context))

        if context.project_guidelines.strip():
            sections.extend(['[PROJECT STRUCTURE & GUIDELINES]', context.project_guidelines, ''])

        if context.review_rules.strip():
            sections.extend(['[REVIEW RULES]', context.review_rules, ''])

        if context.diffs.strip():
            sections.extend(['[DIFFS TO REVIEW]', context.diffs])

        sections.extend(['', '[INSTRUCTIONS]', REVIEW_INSTRUCTIONS])
        return '\n'.join(sections)

    def apply_custom_template(self, context: ReviewContext, include_metadata: bool = True) -> str:
        """Substitute context sections into a ``{{PLACEHOLDER}}`` template."""
        result = context.custom_prompt_template or ''
        result = result.replace('{{PROJECT_GUIDELINES}}', context.project_guidelines)
        result = result.replace('{{REVIEW_RULES}}', context.review_rules)
        result = result.replace('{{DIFFS}}', context.diffs)
        result = result.replace('{{INSTRUCTIONS}}', REVIEW_INSTRUCTIONS)
        metadata = self.build_metadata_section(context) if include_metadata else ''
        return result.replace('{{METADATA}}', metadata)

    def build_guidelines_section(self, guidelines: Sequence[Guideline], compact: bool = False) -> str:
        if not guidelines:
            return ''
        sections = []
        for guideline in guidelines:
            sections.append(f"## {guideline.title}")
            if compact:
                sections.append(_truncate(guideline.content, COMPACT_GUIDELINE_CHARS))
            else:
                sections.append(guideline.content)
            sections.append('')
        return '\n'.join(sections)

    def build_rules_section(self, rules: Sequence[ReviewRule], compact: bool = False) -> str:
        if not rules:
            return ''
        entries = []
        for rule in rules:
            entry = rule.model_dump(mode='json', exclude_none=True)
            if compact:
                entry['description'] = _truncate(rule.description, COMPACT_RULE_DESCRIPTION_CHARS)
                entry.pop('file_patterns', None)
            entries.append(entry)
        return json.dumps({'rules': entries}, indent=2)

    def build_diffs_section(self, hunks: Sequence[Hunk], compact: bool = False) -> str:
        """Group hunks by file and render each as a fenced diff block."""
        if not hunks:
            return ''

        by_file = {}
        for hunk in hunks:
            by_file.setdefault(hunk.file_path, []).append(hunk)

        sections = []
        for file_path, file_hunks in by_file.items():
            sections.append(f"### File: {file_path}")
            if compact:
                lines = sum(h.new_line_count for h in file_hunks)
                sections.append(f"Changes: {len(file_hunks)} hunks, {lines} lines")
            for hunk in file_hunks:
                end = hunk.new_line_start + hunk.new_line_count - 1
                sections.append('')
                sections.append(
                    f"#### Hunk: Lines {hunk.new_line_start}-{end} ({hunk.change_type.value})"
                )
                sections.append('```diff')
                sections.append(hunk.content)
                sections.append('```')
            sections.append('')
        return '\n'.join(sections)

    def build_metadata_section(self, context: ReviewContext) -> str:
        m = context.metadata
        text = (
            "[REVIEW METADATA]\n"
            f"Files: {m.total_files}, Hunks: {m.total_hunks}, Lines: {m.total_lines}, "
            f"Rules: {m.rule_count}, Guidelines: {m.guideline_count}\n"
        )
        if context.batch_info is not None:
            b = context.batch_info
            text += f"Batch: {b.batch_id} (priority {b.priority}, ~{b.estimated_tokens} tokens)\n"
        return text

    def estimate_tokens(self, context: ReviewContext) -> int:
        """Four characters per token over every rendered section."""
        total = len(context.project_guidelines) + len(context.review_rules) + len(context.diffs)
        return (total + 3) // 4
