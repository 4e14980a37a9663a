"""
Input validation schemas using Pydantic v2
Validates score submissions and per-phase contest settings
"""

import logging
import re
from typing import List, Literal, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import NotFoundError, ValidationError
from .types import MAX_SCORE, MIN_SCORE, PHASE_ORDER

logger = logging.getLogger(__name__)

# ==================== SCORE INPUT ====================


class ScoreSubmission(BaseModel):
    """One judge's score for one skater's run."""

    heat_id: str = Field(..., min_length=1, max_length=64)
    skater_id: str = Field(..., min_length=1, max_length=64)
    judge_id: str = Field(..., min_length=1, max_length=64)
    run_number: int = Field(..., ge=1, le=99, description="Run number (1-based)")
    value: float = Field(
        ..., ge=MIN_SCORE, le=MAX_SCORE, allow_inf_nan=False, description="Score (0-10)"
    )
    notes: Optional[str] = Field(None, max_length=1000, description="Private judge notes")

    @field_validator("heat_id", "skater_id", "judge_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id cannot be blank")
        return v

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = InputSanitizer.sanitize_notes(v)
        return v or None

    model_config = ConfigDict(frozen=True)


# ==================== TIMER PRESETS ====================


def parse_timer_preset(preset: str) -> int:
    """Parse a "MM:SS" run-time preset to total seconds.

    Examples:
        - "01:00" → 60
        - "1:30" → 90

    Raises ValidationError on anything else, including negative parts.
    """
    parts = preset.strip().split(":")
    if len(parts) != 2:
        raise ValidationError("time_per_run must be seconds or MM:SS format")
    try:
        mins = int(parts[0])
        secs = int(parts[1])
    except ValueError:
        raise ValidationError("time_per_run must be MM:SS format with valid numbers")
    if mins < 0 or mins > 60:
        raise ValidationError("minutes must be 0-60")
    if secs < 0 or secs > 59:
        raise ValidationError("seconds must be 0-59")
    return mins * 60 + secs


# ==================== CONTEST SETTINGS ====================


class PhaseSettings(BaseModel):
    """Per-phase configuration supplied by contest setup (read-only to the core)."""

    phase: Literal["qualifier", "semi", "final"]
    runs_per_skater: int = Field(..., ge=1, le=20)
    time_per_run: int = Field(..., ge=1, le=3600, description="Seconds per run")
    auto_heat_threshold: int = Field(..., ge=1, le=1000)
    max_participants_per_heat: Optional[int] = Field(None, ge=1, le=1000)
    scoring_system: Literal["best", "average", "total"] = "best"
    # Explicit cut into this phase; falls back to auto_heat_threshold.
    qualifying_count: Optional[int] = Field(None, ge=1, le=1000)
    seeding: Literal["sequential", "snake"] = "sequential"

    @field_validator("time_per_run", mode="before")
    @classmethod
    def parse_time_per_run(cls, v):
        """Accept seconds or a "MM:SS" preset string."""
        if not isinstance(v, str):
            return v
        v = v.strip()
        if ":" not in v:
            return v
        total = parse_timer_preset(v)
        logger.debug(f"Normalized time_per_run: {v} → {total}s")
        return total

    @property
    def cut(self) -> int:
        """Number of skaters admitted into this phase."""
        return self.qualifying_count or self.auto_heat_threshold

    model_config = ConfigDict(frozen=True)


class ContestSettings(BaseModel):
    """Ordered phase settings plus contest-wide run type."""

    run_type: Literal["single_run", "jam"] = "single_run"
    skaters_per_jam: Optional[int] = Field(None, ge=2, le=20)
    phases: List[PhaseSettings] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_phases(self) -> Self:
        names = [p.phase for p in self.phases]
        if len(set(names)) != len(names):
            raise ValueError("phases must be unique")
        expected = [p for p in PHASE_ORDER if p in names]
        if names != expected:
            raise ValueError(f"phases must follow the order {PHASE_ORDER}")
        if self.run_type == "jam" and self.skaters_per_jam is None:
            raise ValueError("jam contests require skaters_per_jam")
        return self

    def for_phase(self, phase: str) -> PhaseSettings:
        for settings in self.phases:
            if settings.phase == phase:
                return settings
        raise NotFoundError(f"no settings for phase {phase!r}")

    def has_phase(self, phase: str) -> bool:
        return any(settings.phase == phase for settings in self.phases)

    model_config = ConfigDict(frozen=True)


def default_contest_settings(
    scoring_system: str = "best", run_type: str = "single_run"
) -> ContestSettings:
    """Settings the contest setup form starts from."""
    return ContestSettings(
        run_type=run_type,
        skaters_per_jam=4 if run_type == "jam" else None,
        phases=[
            PhaseSettings(
                phase="qualifier",
                runs_per_skater=2,
                time_per_run=60,
                auto_heat_threshold=8,
                scoring_system=scoring_system,
            ),
            PhaseSettings(
                phase="semi",
                runs_per_skater=2,
                time_per_run=60,
                auto_heat_threshold=6,
                scoring_system=scoring_system,
            ),
            PhaseSettings(
                phase="final",
                runs_per_skater=3,
                time_per_run=90,
                auto_heat_threshold=4,
                scoring_system=scoring_system,
            ),
        ],
    )


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()
        value = value[:max_length]
        value = value.replace("\0", "")

        return value

    @staticmethod
    def sanitize_notes(notes: str) -> str:
        """Strip control characters from judge notes, keep newlines and tabs."""
        notes = InputSanitizer.sanitize_string(notes, 1000)
        notes = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", "", notes)
        return notes.strip()

    @staticmethod
    def validate_score(**fields) -> ScoreSubmission:
        """
        Validate and sanitize a score submission

        Returns:
            ScoreSubmission: Validated submission

        Raises:
            ValidationError: If validation fails
        """
        try:
            return ScoreSubmission(**fields)
        except PydanticValidationError as e:
            logger.warning(f"Score validation failed: {e}")
            raise ValidationError(f"Invalid score: {e}") from e

    @staticmethod
    def validate_contest_settings(data: dict) -> ContestSettings:
        try:
            return ContestSettings.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"Contest settings validation failed: {e}")
            raise ValidationError(f"Invalid contest settings: {e}") from e


# ==================== EXPORT ====================

__all__ = [
    "ScoreSubmission",
    "parse_timer_preset",
    "PhaseSettings",
    "ContestSettings",
    "default_contest_settings",
    "InputSanitizer",
]
