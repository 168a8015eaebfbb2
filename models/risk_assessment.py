"""Domain model for a validated avalanche risk report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

MAX_MOVEMENT_SUMMARY_LENGTH = 600


class RiskLevel(str, Enum):
    """Five-step danger scale, ordered from least to most severe."""

    LOW = "Low"
    MODERATE = "Moderate"
    CONSIDERABLE = "Considerable"
    HIGH = "High"
    EXTREME = "Extreme"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self) + 1


class SnowTexture(str, Enum):
    GRANULAR = "Granular"
    BLOCKY = "Blocky"
    FLUFFY = "Fluffy"
    MIXED = "Mixed"
    UNKNOWN = "Unknown"


class AvalancheType(str, Enum):
    POWDER = "powder"
    LOOSE_SNOW = "loose-snow"
    SLAB = "slab"
    NONE = "none"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClampedField:
    """A value outside its valid range that was corrected to the nearest bound."""

    field: str
    original: float
    adjusted: float

    @property
    def message(self) -> str:
        return f"{self.field} was {self.original:g}, adjusted to {self.adjusted:g}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "clamped_field",
            "field": self.field,
            "original": self.original,
            "adjusted": self.adjusted,
            "message": self.message,
        }


@dataclass(frozen=True)
class ClassificationNote:
    """Non-fatal remark when the declared avalanche type is not backed by the reported indicators."""

    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "classification_note", "code": self.code, "message": self.message}


AssessmentWarning = Union[ClampedField, ClassificationNote]


@dataclass(frozen=True)
class AvalancheIndicators:
    """Visual characteristics reported alongside the risk, used to cross-check the avalanche type.

    String attributes are lower-cased tokens such as "fan-shaped", "point" or "chaotic".
    """

    powder_cloud: bool = False
    fracture_line: bool = False
    fracture_depth: Optional[str] = None
    point_release: bool = False
    debris_pattern: Optional[str] = None
    snow_density: Optional[str] = None
    starting_width: Optional[str] = None
    propagation: Optional[str] = None
    vertical_movement: bool = False
    lateral_spread: bool = False
    granular: bool = False
    blocky: bool = False
    fluffy: bool = False
    surface_roughness: Optional[str] = None
    anchoring_points: bool = False
    convex_rollover: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "powder_cloud": self.powder_cloud,
            "fracture_line": self.fracture_line,
            "fracture_depth": self.fracture_depth,
            "point_release": self.point_release,
            "debris_pattern": self.debris_pattern,
            "snow_density": self.snow_density,
            "starting_width": self.starting_width,
            "propagation": self.propagation,
            "vertical_movement": self.vertical_movement,
            "lateral_spread": self.lateral_spread,
            "granular": self.granular,
            "blocky": self.blocky,
            "fluffy": self.fluffy,
            "surface_roughness": self.surface_roughness,
            "anchoring_points": self.anchoring_points,
            "convex_rollover": self.convex_rollover,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Validated, structured risk report for a single terrain photograph.

    Attributes:
        overall_risk: Danger level on the five-step scale.
        confidence: Model confidence in [0.0, 1.0].
        snow_texture: Dominant snow surface texture.
        terrain_features: Ordered, de-duplicated free-text feature tags.
        predicted_movement_pattern: Short summary of how a release would likely move.
        slope_angle_estimate_degrees: Optional slope estimate in [0, 90].
        avalanche_present: Whether the photo shows an avalanche, when reported.
        avalanche_type: Declared avalanche type, when reported.
        indicators: Reported visual characteristics, when reported.
        warnings: Non-fatal anomalies corrected or noticed while parsing.
    """

    overall_risk: RiskLevel
    confidence: float
    snow_texture: SnowTexture
    terrain_features: Tuple[str, ...]
    predicted_movement_pattern: str
    slope_angle_estimate_degrees: Optional[float] = None
    avalanche_present: Optional[bool] = None
    avalanche_type: Optional[AvalancheType] = None
    indicators: Optional[AvalancheIndicators] = None
    warnings: Tuple[AssessmentWarning, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        slope = self.slope_angle_estimate_degrees
        if slope is not None and not 0.0 <= slope <= 90.0:
            raise ValueError(f"slope_angle_estimate_degrees must be within [0, 90], got {slope}")

    @property
    def clamped_fields(self) -> Tuple[ClampedField, ...]:
        return tuple(w for w in self.warnings if isinstance(w, ClampedField))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_risk": self.overall_risk.value,
            "confidence": self.confidence,
            "snow_texture": self.snow_texture.value,
            "terrain_features": list(self.terrain_features),
            "predicted_movement_pattern": self.predicted_movement_pattern,
            "slope_angle_estimate_degrees": self.slope_angle_estimate_degrees,
            "avalanche_present": self.avalanche_present,
            "avalanche_type": self.avalanche_type.value if self.avalanche_type else None,
            "indicators": self.indicators.to_dict() if self.indicators else None,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }
