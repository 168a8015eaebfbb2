"""Decode model replies into validated `RiskAssessment` objects.

The model answers in best-effort JSON, so decoding is tolerant where a safe
interpretation exists and strict where it does not:

- numeric values outside their range are clamped and reported as `ClampedField`
- unrecognised snow textures fall back to `Unknown` (several textures give `Mixed`)
- a required field that is absent or null rejects the reply with `IncompleteAssessment`
- content with no JSON object, or a required field of an uninterpretable type,
  raises `SchemaViolation`
"""

from __future__ import annotations

import logging
import math
import re
import sys
from typing import Any, Dict, List, Optional, Tuple

from models.analysis_models import RawModelReply
from models.errors import IncompleteAssessment, SchemaViolation
from models.risk_assessment import (
    MAX_MOVEMENT_SUMMARY_LENGTH,
    AssessmentWarning,
    AvalancheIndicators,
    AvalancheType,
    ClampedField,
    RiskAssessment,
    RiskLevel,
    SnowTexture,
)
from services.analysis.consistency import check_classification
from services.openai.response_utils import extract_json_object, extract_message_content

LOGGER = logging.getLogger(__name__)

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "overall_risk": ("overall_risk", "risk_level", "overall_risk_level", "avalanche_risk", "risk"),
    "confidence": ("confidence", "confidence_level", "confidence_score"),
    "snow_texture": ("snow_texture", "texture"),
    "terrain_features": ("terrain_features", "features"),
    "predicted_movement_pattern": ("predicted_movement_pattern", "movement_pattern", "predicted_movement"),
    "slope_angle_estimate_degrees": ("slope_angle_estimate_degrees", "slope_angle_degrees", "slope_angle"),
    "avalanche_present": ("avalanche_present",),
    "avalanche_type": ("avalanche_type",),
    "visual_indicators": ("visual_indicators", "visual_characteristics", "indicators"),
}

REQUIRED_FIELDS = (
    "overall_risk",
    "confidence",
    "snow_texture",
    "terrain_features",
    "predicted_movement_pattern",
)

WRAPPER_KEYS = ("assessment", "risk_assessment", "analysis", "result")

_TEXTURE_KEYWORDS = {
    SnowTexture.GRANULAR: ("granular", "grainy", "corn snow", "sugary"),
    SnowTexture.BLOCKY: ("blocky", "blocks", "chunky", "chunks", "slab"),
    SnowTexture.FLUFFY: ("fluffy", "powder", "powdery", "airy"),
}

_AVALANCHE_TYPES = {
    "powder": AvalancheType.POWDER,
    "loose-snow": AvalancheType.LOOSE_SNOW,
    "loose snow": AvalancheType.LOOSE_SNOW,
    "loose": AvalancheType.LOOSE_SNOW,
    "slab": AvalancheType.SLAB,
    "none": AvalancheType.NONE,
    "no avalanche": AvalancheType.NONE,
}

_TRUE_TOKENS = {"true", "yes", "y", "1", "present"}
_NUMBER_PATTERN = re.compile(r"(?<![\d.])-?\d+(?:\.\d+)?")


def _normalize_key(key: str) -> str:
    return re.sub(r"[\s\-]+", "_", key.strip().lower())


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_normalize_key(str(key)): value for key, value in data.items()}


def _lookup(data: Dict[str, Any], field_name: str) -> Any:
    for alias in FIELD_ALIASES[field_name]:
        if data.get(alias) is not None:
            return data[alias]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_float(value: Any) -> float:
    """Convert a JSON number to float, saturating magnitudes beyond the float range."""
    try:
        number = float(value)
    except OverflowError:
        return sys.float_info.max if value > 0 else -sys.float_info.max
    if math.isinf(number):
        return math.copysign(sys.float_info.max, number)
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_TOKENS
    return False


def _token(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return None


def _clamp(field_name: str, value: float, low: float, high: float, warnings: List[AssessmentWarning]) -> float:
    if value < low or value > high:
        adjusted = min(max(value, low), high)
        warnings.append(ClampedField(field=field_name, original=value, adjusted=adjusted))
        LOGGER.warning("Clamped %s from %s to %s", field_name, value, adjusted)
        return adjusted
    return value


class ResponseParser:
    """Validate a raw model reply and build a `RiskAssessment`."""

    def __init__(self, max_movement_length: int = MAX_MOVEMENT_SUMMARY_LENGTH) -> None:
        self.max_movement_length = max_movement_length

    def parse(self, raw_reply: RawModelReply) -> RiskAssessment:
        """Extract the generated content of *raw_reply* and decode it.

        Raises:
            MalformedEnvelope: If the envelope lacks the choices/message structure.
            SchemaViolation: If no usable JSON object can be extracted or a field is uninterpretable.
            IncompleteAssessment: If a required field is missing.
        """
        content = extract_message_content(raw_reply.body)
        data = extract_json_object(content)
        if data is None:
            LOGGER.error("Model reply contained no JSON object (request_id=%s)", raw_reply.request_id)
            raise SchemaViolation("The model reply did not contain a structured assessment.")
        return self.decode(data)

    def decode(self, data: Dict[str, Any]) -> RiskAssessment:
        """Decode an already extracted JSON object."""
        fields = self._unwrap(_normalize_keys(data))

        missing = [name for name in REQUIRED_FIELDS if _lookup(fields, name) is None]
        if missing:
            LOGGER.error("Model reply is missing required fields: %s", ", ".join(missing))
            raise IncompleteAssessment(
                f"The model reply is missing required fields: {', '.join(missing)}.",
                missing_fields=tuple(missing),
            )

        warnings: List[AssessmentWarning] = []
        overall_risk = self._risk_level(_lookup(fields, "overall_risk"))
        confidence = self._confidence(_lookup(fields, "confidence"), warnings)
        snow_texture = self._snow_texture(_lookup(fields, "snow_texture"))
        terrain_features = self._terrain_features(_lookup(fields, "terrain_features"))
        movement = self._movement_summary(_lookup(fields, "predicted_movement_pattern"), warnings)
        slope = self._slope(_lookup(fields, "slope_angle_estimate_degrees"), warnings)

        present_raw = _lookup(fields, "avalanche_present")
        avalanche_present = _as_bool(present_raw) if present_raw is not None else None
        avalanche_type = self._avalanche_type(_lookup(fields, "avalanche_type"))
        indicators = self._indicators(_lookup(fields, "visual_indicators"), snow_texture)

        note = check_classification(avalanche_present, avalanche_type, indicators, slope)
        if note is not None:
            LOGGER.info("Classification note attached: %s", note.code)
            warnings.append(note)

        return RiskAssessment(
            overall_risk=overall_risk,
            confidence=confidence,
            snow_texture=snow_texture,
            terrain_features=terrain_features,
            predicted_movement_pattern=movement,
            slope_angle_estimate_degrees=slope,
            avalanche_present=avalanche_present,
            avalanche_type=avalanche_type,
            indicators=indicators,
            warnings=tuple(warnings),
        )

    def _unwrap(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Descend into a single wrapper object when the fields are nested one level down."""
        if any(_lookup(fields, name) is not None for name in REQUIRED_FIELDS):
            return fields
        for key in WRAPPER_KEYS:
            nested = fields.get(key)
            if isinstance(nested, dict):
                return _normalize_keys(nested)
        return fields

    def _risk_level(self, value: Any) -> RiskLevel:
        levels = list(RiskLevel)
        if _is_number(value):
            whole = isinstance(value, int) or value.is_integer()
            if whole and 1 <= value <= len(levels):
                return levels[int(value) - 1]
            raise SchemaViolation(f"overall_risk {value!r} is not on the five-step danger scale.")
        if not isinstance(value, str):
            raise SchemaViolation("overall_risk must be a danger level name.")

        text = value.strip().lower()
        if "very high" in text:
            return RiskLevel.EXTREME
        named = [level for level in levels if re.search(rf"\b{level.value.lower()}\b", text)]
        if named:
            # "moderate to considerable" resolves to the more severe level
            return max(named, key=lambda level: level.rank)
        digits = re.findall(r"\b([1-5])\b", text)
        if digits:
            return levels[int(digits[0]) - 1]
        raise SchemaViolation(f"overall_risk {value!r} is not a recognised danger level.")

    def _confidence(self, value: Any, warnings: List[AssessmentWarning]) -> float:
        percent = False
        if isinstance(value, str):
            text = value.strip()
            percent = text.endswith("%")
            try:
                value = float(text.rstrip("%").strip())
            except ValueError as exc:
                raise SchemaViolation(f"confidence {text!r} is not a number.") from exc
        if not _is_number(value):
            raise SchemaViolation("confidence must be a number.")
        number = _to_float(value)
        if math.isnan(number):
            raise SchemaViolation("confidence must be a number.")
        if percent:
            number /= 100.0
        return _clamp("confidence", number, 0.0, 1.0, warnings)

    def _snow_texture(self, value: Any) -> SnowTexture:
        if isinstance(value, dict):
            flags = _normalize_keys(value)
            found = {texture for texture in _TEXTURE_KEYWORDS if _as_bool(flags.get(texture.value.lower()))}
            return self._texture_from_set(found)
        if isinstance(value, list):
            found = set()
            for item in value:
                texture = self._snow_texture(item) if isinstance(item, str) else SnowTexture.UNKNOWN
                if texture is SnowTexture.MIXED:
                    return SnowTexture.MIXED
                if texture is not SnowTexture.UNKNOWN:
                    found.add(texture)
            return self._texture_from_set(found)
        if not isinstance(value, str):
            return SnowTexture.UNKNOWN

        text = value.strip().lower()
        for texture in SnowTexture:
            if text == texture.value.lower():
                return texture
        if re.search(r"\bmixed\b", text):
            return SnowTexture.MIXED
        found = {
            texture
            for texture, keywords in _TEXTURE_KEYWORDS.items()
            if any(re.search(rf"\b{keyword}\b", text) for keyword in keywords)
        }
        texture = self._texture_from_set(found)
        if texture is SnowTexture.UNKNOWN:
            LOGGER.info("Unrecognised snow texture %r mapped to Unknown", value)
        return texture

    @staticmethod
    def _texture_from_set(found: set) -> SnowTexture:
        if len(found) > 1:
            return SnowTexture.MIXED
        if found:
            return next(iter(found))
        return SnowTexture.UNKNOWN

    def _terrain_features(self, value: Any) -> Tuple[str, ...]:
        if isinstance(value, str):
            items: List[Any] = re.split(r"[,;\n]", value)
        elif isinstance(value, list):
            items = value
        else:
            raise SchemaViolation("terrain_features must be a list of strings.")

        features: List[str] = []
        seen = set()
        for item in items:
            if item is None or isinstance(item, (dict, list)):
                continue
            text = " ".join(str(item).split())
            key = text.casefold()
            if not text or key in seen:
                continue
            seen.add(key)
            features.append(text)
        return tuple(features)

    def _movement_summary(self, value: Any, warnings: List[AssessmentWarning]) -> str:
        if isinstance(value, dict):
            value = self._describe_movement(_normalize_keys(value))
        if not isinstance(value, str):
            raise SchemaViolation("predicted_movement_pattern must be text.")
        text = " ".join(value.split())
        if not text:
            raise IncompleteAssessment(
                "The model reply is missing required fields: predicted_movement_pattern.",
                missing_fields=("predicted_movement_pattern",),
            )
        if len(text) > self.max_movement_length:
            warnings.append(
                ClampedField(
                    field="predicted_movement_pattern",
                    original=float(len(text)),
                    adjusted=float(self.max_movement_length),
                )
            )
            text = text[: self.max_movement_length - 1].rstrip() + "…"
        return text

    @staticmethod
    def _describe_movement(movement: Dict[str, Any]) -> str:
        parts = []
        if _token(movement.get("starting_width")):
            parts.append(f"{_token(movement.get('starting_width'))} release")
        if _token(movement.get("propagation")):
            parts.append(f"{_token(movement.get('propagation'))} propagation")
        if _as_bool(movement.get("vertical_movement")):
            parts.append("significant vertical movement")
        if _as_bool(movement.get("lateral_spread")):
            parts.append("lateral spread")
        return ", ".join(parts).capitalize()

    def _slope(self, value: Any, warnings: List[AssessmentWarning]) -> Optional[float]:
        if value is None:
            return None
        if isinstance(value, str):
            numbers = [_to_float(match) for match in _NUMBER_PATTERN.findall(value)]
            if not numbers:
                return None
            # "30-45 degrees" is read as the middle of the range
            number = _to_float(sum(numbers[:2]) / len(numbers[:2]))
        elif _is_number(value):
            number = _to_float(value)
        else:
            return None
        if math.isnan(number):
            return None
        return _clamp("slope_angle_estimate_degrees", number, 0.0, 90.0, warnings)

    def _avalanche_type(self, value: Any) -> Optional[AvalancheType]:
        if value is None:
            return None
        text = _token(value)
        if text is None:
            return AvalancheType.UNKNOWN
        return _AVALANCHE_TYPES.get(text.replace("_", "-"), _AVALANCHE_TYPES.get(text, AvalancheType.UNKNOWN))

    def _indicators(
        self,
        value: Any,
        snow_texture: SnowTexture,
    ) -> Optional[AvalancheIndicators]:
        if not isinstance(value, dict):
            return None
        block = _normalize_keys(value)

        # Older replies nest texture, movement and terrain details in sub-objects
        texture_block = block.get("snow_texture")
        texture = _normalize_keys(texture_block) if isinstance(texture_block, dict) else {}
        movement_block = block.get("movement_pattern")
        movement = _normalize_keys(movement_block) if isinstance(movement_block, dict) else {}
        terrain_block = block.get("terrain")
        terrain = _normalize_keys(terrain_block) if isinstance(terrain_block, dict) else {}

        def pick(key: str, *sources: Dict[str, Any]) -> Any:
            for source in sources:
                if source.get(key) is not None:
                    return source[key]
            return None

        if texture:
            granular = _as_bool(texture.get("granular"))
            blocky = _as_bool(texture.get("blocky"))
            fluffy = _as_bool(texture.get("fluffy"))
        else:
            granular = snow_texture is SnowTexture.GRANULAR
            blocky = snow_texture is SnowTexture.BLOCKY
            fluffy = snow_texture is SnowTexture.FLUFFY

        return AvalancheIndicators(
            powder_cloud=_as_bool(block.get("powder_cloud")),
            fracture_line=_as_bool(block.get("fracture_line")),
            fracture_depth=_token(block.get("fracture_depth")),
            point_release=_as_bool(block.get("point_release")),
            debris_pattern=_token(block.get("debris_pattern")),
            snow_density=_token(pick("snow_density", block) or pick("density", texture)),
            starting_width=_token(pick("starting_width", block, movement)),
            propagation=_token(pick("propagation", block, movement)),
            vertical_movement=_as_bool(pick("vertical_movement", block, movement)),
            lateral_spread=_as_bool(pick("lateral_spread", block, movement)),
            granular=granular,
            blocky=blocky,
            fluffy=fluffy,
            surface_roughness=_token(pick("surface_roughness", block, terrain)),
            anchoring_points=_as_bool(pick("anchoring_points", block, terrain)),
            convex_rollover=_as_bool(pick("convex_rollover", block, terrain)),
        )
