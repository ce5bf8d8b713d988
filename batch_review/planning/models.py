"""
Planning data models.

Batches and plans are immutable once built; planning options arrive
already validated as a pydantic model.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from batch_review.analysis.diff_parser import Hunk
from batch_review.analysis.file_patterns import (
    CONFIG_PATTERNS,
    CRITICAL_PATTERNS,
    TEST_PATTERNS,
    normalize_extension,
)


class Strategy(str, Enum):
    """Plan-level choice between one review call and many."""
    SINGLE = "single"
    BATCH = "batch"


class Priority(str, Enum):
    """Batch priority derived from the files it touches."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Batch:
    """A bounded group of hunks submitted together in one review call."""
    id: str
    hunks: Tuple[Hunk, ...]
    files: Tuple[str, ...]
    estimated_tokens: int
    priority: Priority
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'files': list(self.files),
            'hunk_count': len(self.hunks),
            'estimated_tokens': self.estimated_tokens,
            'priority': self.priority.value,
            'description': self.description,
        }


@dataclass(frozen=True)
class ReviewPlan:
    """The set of batches one review run will execute."""
    strategy: Strategy
    batches: Tuple[Batch, ...]
    total_files: int
    total_hunks: int
    estimated_tokens: int
    estimated_duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy.value,
            'batches': [b.to_dict() for b in self.batches],
            'total_files': self.total_files,
            'total_hunks': self.total_hunks,
            'estimated_tokens': self.estimated_tokens,
            'estimated_duration': self.estimated_duration,
        }


class PlanningOptions(BaseModel):
    """Options controlling how hunks are partitioned into batches."""

    max_tokens_per_batch: int = Field(default=50000, gt=0)
    max_files_per_batch: int = Field(default=20, gt=0)
    max_hunks_per_batch: int = Field(default=100, gt=0)
    batch_strategy: Literal["file-based", "size-based", "mixed"] = "mixed"
    prioritize_file_types: List[str] = Field(default_factory=list)
    exclude_file_types: List[str] = Field(default_factory=list)
    force_strategy: Optional[Strategy] = None

    @field_validator("prioritize_file_types", "exclude_file_types")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Store extensions lower-case without leading dots."""
        return [normalize_extension(ext) for ext in v if normalize_extension(ext)]

    @classmethod
    def from_settings(cls, settings) -> "PlanningOptions":
        """Build planning options from application settings."""
        return cls(
            max_tokens_per_batch=settings.MAX_TOKENS_PER_BATCH,
            max_files_per_batch=settings.MAX_FILES_PER_BATCH,
            max_hunks_per_batch=settings.MAX_HUNKS_PER_BATCH,
            batch_strategy=settings.BATCH_STRATEGY,
            prioritize_file_types=settings.PRIORITIZE_FILE_TYPES,
            exclude_file_types=settings.EXCLUDE_FILE_TYPES,
        )


@dataclass(frozen=True)
class TierLimits:
    """Fraction of the plan limits a tier may use, plus hard caps."""
    token_ratio: float
    token_cap: int
    max_files: int
    max_hunks: int


@dataclass
class PlanningHeuristics:
    """Thresholds the planner uses to choose strategies and size batches."""
    small_review_threshold: int = 3
    medium_review_threshold: int = 10
    large_review_threshold: int = 25
    max_tokens_for_single: int = 20000
    file_diversity_threshold: int = 8
    avg_tokens_per_hunk_threshold: int = 200
    extension_diversity_threshold: int = 4
    high_tier_token_threshold: int = 300
    medium_tier_token_threshold: int = 150
    critical_file_patterns: List[str] = field(default_factory=lambda: list(CRITICAL_PATTERNS))
    test_file_patterns: List[str] = field(default_factory=lambda: list(TEST_PATTERNS))
    config_file_patterns: List[str] = field(default_factory=lambda: list(CONFIG_PATTERNS))
    high_tier_extensions: List[str] = field(
        default_factory=lambda: ['ts', 'js', 'tsx', 'jsx', 'py', 'java', 'cpp', 'c']
    )
    medium_tier_extensions: List[str] = field(
        default_factory=lambda: ['json', 'yml', 'yaml', 'xml', 'sql']
    )
    critical_limits: TierLimits = TierLimits(0.6, 12000, 3, 8)
    high_limits: TierLimits = TierLimits(0.7, 14000, 4, 6)
    medium_limits: TierLimits = TierLimits(0.85, 17000, 6, 10)
