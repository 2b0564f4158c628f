"""Data models for batch submission runs."""

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    """Result of one unit as seen on the target surface."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNDETERMINED = "undetermined"


class VerificationMode(str, Enum):
    """How a surface confirms that a submission produced an artifact."""

    IMMEDIATE = "immediate"  # wait for this unit's own response
    DEFERRED = "deferred"  # confirm the prior unit while submitting this one


@dataclass(frozen=True)
class ImageUnit:
    """One image file submitted with the batch prompt."""

    path: Path
    index: int

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def file_id(self) -> str:
        """Identity used by counter stores."""
        return str(self.path)


@dataclass(frozen=True)
class OutcomeRecord:
    """An outcome resolved for a specific unit."""

    unit: ImageUnit
    outcome: Outcome


@dataclass(frozen=True)
class ProcessReport:
    """Uniform adapter result for one `process` call.

    `resolved` names whichever unit the call was able to confirm: the current
    unit for immediate surfaces, the previously submitted unit for deferred
    ones. `awaiting_verification` is set when the current unit was submitted
    but its own outcome will only be known on a later call.
    """

    submitted: bool
    resolved: OutcomeRecord | None = None
    awaiting_verification: bool = False


@dataclass
class RunSummary:
    """Counters for one pipeline run, summed field-wise across sessions."""

    processed: int = 0
    skipped: int = 0
    success: int = 0
    failed: int = 0
    submit_errors: int = 0
    counter_errors: int = 0

    def __add__(self, other: "RunSummary") -> "RunSummary":
        if not isinstance(other, RunSummary):
            return NotImplemented
        return RunSummary(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PairAssignment:
    """Input group matched positionally with a browser profile."""

    input_dir: Path
    profile_dir: Path

    @property
    def label(self) -> str:
        return f"{self.input_dir.name}<->{self.profile_dir.name}"


class CounterRecord(BaseModel):
    """Persisted per-file tally."""

    success_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)

    def incremented(self, outcome: Outcome) -> "CounterRecord":
        """Return a copy with the counter for `outcome` bumped by one."""
        if outcome == Outcome.SUCCESS:
            return self.model_copy(update={"success_count": self.success_count + 1})
        if outcome == Outcome.FAILURE:
            return self.model_copy(update={"failed_count": self.failed_count + 1})
        raise ValueError(f"Cannot record undetermined outcome: {outcome}")
