"""Phase models for analysis sessions."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from models.errors import AnalysisFailure
from models.risk_assessment import RiskAssessment


class PhaseName(str, Enum):
	"""Discrete stages of one analysis session's lifecycle."""

	IDLE = "idle"
	ENCODING = "encoding"
	REQUESTING = "requesting"
	PARSING = "parsing"
	SUCCEEDED = "succeeded"
	FAILED = "failed"

	@property
	def in_flight(self) -> bool:
		return self in (PhaseName.ENCODING, PhaseName.REQUESTING, PhaseName.PARSING)

	@property
	def terminal(self) -> bool:
		return self in (PhaseName.SUCCEEDED, PhaseName.FAILED)


@dataclass(frozen=True)
class PhaseSnapshot:
	"""Immutable view of a session phase handed to the presentation layer."""

	name: PhaseName
	sequence: int
	assessment: Optional[RiskAssessment] = None
	failure: Optional[AnalysisFailure] = None
	input_tokens: Optional[int] = None
	output_tokens: Optional[int] = None
	latency: Optional[float] = None
	updated_at: float = field(default_factory=lambda: time.time())

	@classmethod
	def idle(cls, sequence: int = 0) -> "PhaseSnapshot":
		return cls(name=PhaseName.IDLE, sequence=sequence)

	@classmethod
	def succeeded(
		cls,
		sequence: int,
		assessment: RiskAssessment,
		*,
		input_tokens: Optional[int] = None,
		output_tokens: Optional[int] = None,
		latency: Optional[float] = None,
	) -> "PhaseSnapshot":
		return cls(
			name=PhaseName.SUCCEEDED,
			sequence=sequence,
			assessment=assessment,
			input_tokens=input_tokens,
			output_tokens=output_tokens,
			latency=latency,
		)

	@classmethod
	def failed(cls, sequence: int, failure: AnalysisFailure, latency: Optional[float] = None) -> "PhaseSnapshot":
		return cls(name=PhaseName.FAILED, sequence=sequence, failure=failure, latency=latency)

	@property
	def in_flight(self) -> bool:
		return self.name.in_flight

	def to_dict(self) -> Dict[str, Any]:
		"""Return a JSON-serializable representation of the snapshot."""
		return {
			"phase": self.name.value,
			"sequence": self.sequence,
			"assessment": self.assessment.to_dict() if self.assessment else None,
			"error": self.failure.to_dict() if self.failure else None,
			"input_tokens": self.input_tokens,
			"output_tokens": self.output_tokens,
			"latency": self.latency,
			"updated_at": self.updated_at,
		}
