"""
Structured schemas for review findings.

These Pydantic models define what a review port returns, ensuring
every finding points at a real line with a known severity.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator


class Severity(str, Enum):
    """Finding severity levels, ordered info < warning < error."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class Finding(BaseModel):
    """A single review finding attached to a file and line."""

    file: str = Field(
        ...,
        min_length=1,
        description="Path of the file the finding refers to"
    )
    line: int = Field(
        ...,
        ge=1,
        description="Line number in the new version of the file"
    )
    end_line: Optional[int] = Field(
        None,
        ge=1,
        description="Last line of a multi-line finding"
    )
    severity: Severity = Field(
        ...,
        description="Severity level of the issue"
    )
    message: str = Field(
        ...,
        min_length=1,
        description="Clear, actionable feedback message"
    )
    suggestion: Optional[str] = Field(
        None,
        description="Optional code suggestion or fix"
    )
    rule_id: Optional[str] = Field(
        None,
        description="Identifier of the rule that produced the finding"
    )
    category: Optional[str] = Field(
        None,
        description="Finding category, 'heuristic' for synthesized findings"
    )

    @model_validator(mode='after')
    def validate_line_range(self) -> 'Finding':
        """Ensure end_line is not before line."""
        if self.end_line is not None and self.end_line < self.line:
            raise ValueError(f"end_line ({self.end_line}) must be >= line ({self.line})")
        return self


class ReviewResult(BaseModel):
    """What a review port returns for one call."""

    findings: List[Finding] = Field(default_factory=list)
    summary: Optional[str] = None


class LLMConfig(BaseModel):
    """Per-call model settings."""

    model: str
    max_tokens: int = Field(..., gt=0)
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    timeout: Optional[float] = Field(None, gt=0)

    @classmethod
    def from_settings(cls, settings) -> "LLMConfig":
        return cls(
            model=settings.LLM_MODEL,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
            timeout=settings.LLM_CALL_TIMEOUT_SECONDS,
        )


class ReviewRule(BaseModel):
    """A project review rule, already loaded by the caller."""

    id: str
    description: str
    severity: Severity = Severity.WARNING
    category: Optional[str] = None
    file_patterns: List[str] = Field(default_factory=list)


class Guideline(BaseModel):
    """A project guideline document, already loaded by the caller."""

    title: str
    content: str
