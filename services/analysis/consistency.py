"""Cross-check a declared avalanche type against the reported visual indicators.

Each avalanche type has primary indicators worth 3 points and secondary
indicators worth 1 point. The declared type is accepted when it is the clear
winner: at least 6 points and a lead of at least 3 over the runner-up.
Anything else produces a `ClassificationNote`; the assessment itself still
succeeds.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from models.risk_assessment import AvalancheIndicators, AvalancheType, ClassificationNote

LOGGER = logging.getLogger(__name__)

PRIMARY_WEIGHT = 3
SECONDARY_WEIGHT = 1
MIN_WINNING_SCORE = 6
MIN_SCORE_MARGIN = 3
STEEP_SLOPE_DEGREES = 45.0


def _steep(slope_degrees: Optional[float]) -> bool:
    return slope_degrees is not None and slope_degrees > STEEP_SLOPE_DEGREES


def indicator_scores(indicators: AvalancheIndicators, slope_degrees: Optional[float] = None) -> Dict[AvalancheType, int]:
    """Return the evidence score of each avalanche type."""
    steep = _steep(slope_degrees)

    powder = 0
    if indicators.powder_cloud:
        powder += PRIMARY_WEIGHT
    if indicators.fluffy:
        powder += PRIMARY_WEIGHT
    if indicators.vertical_movement:
        powder += PRIMARY_WEIGHT
    if indicators.snow_density == "low":
        powder += SECONDARY_WEIGHT
    if indicators.propagation == "chaotic":
        powder += SECONDARY_WEIGHT
    if steep:
        powder += SECONDARY_WEIGHT

    loose = 0
    if indicators.starting_width == "point":
        loose += PRIMARY_WEIGHT
    if indicators.propagation == "fan":
        loose += PRIMARY_WEIGHT
    if indicators.granular:
        loose += PRIMARY_WEIGHT
    if indicators.debris_pattern == "fan-shaped":
        loose += PRIMARY_WEIGHT
    if not indicators.fracture_line:
        loose += SECONDARY_WEIGHT
    if indicators.snow_density == "low":
        loose += SECONDARY_WEIGHT
    if steep:
        loose += SECONDARY_WEIGHT

    slab = 0
    if indicators.fracture_line:
        slab += PRIMARY_WEIGHT
    if indicators.blocky:
        slab += PRIMARY_WEIGHT
    if indicators.starting_width == "wide":
        slab += PRIMARY_WEIGHT
    if indicators.propagation == "linear":
        slab += PRIMARY_WEIGHT
    if indicators.snow_density == "high":
        slab += SECONDARY_WEIGHT
    if indicators.debris_pattern == "linear":
        slab += SECONDARY_WEIGHT
    if indicators.lateral_spread:
        slab += SECONDARY_WEIGHT

    return {AvalancheType.POWDER: powder, AvalancheType.LOOSE_SNOW: loose, AvalancheType.SLAB: slab}


def check_classification(
    avalanche_present: Optional[bool],
    avalanche_type: Optional[AvalancheType],
    indicators: Optional[AvalancheIndicators],
    slope_degrees: Optional[float] = None,
) -> Optional[ClassificationNote]:
    """Return a note when the declared avalanche type is not supported by the indicators.

    Nothing is checked unless an avalanche is reported present and indicators were supplied.
    """
    if not avalanche_present or indicators is None:
        return None

    scores = indicator_scores(indicators, slope_degrees)
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    (expected_type, best), (_, runner_up) = ranked[0], ranked[1]
    LOGGER.debug("Avalanche type scores: %s", {kind.value: score for kind, score in scores.items()})

    if best - runner_up < MIN_SCORE_MARGIN:
        return ClassificationNote(
            code="ambiguous_indicators",
            message="Several avalanche types show similar characteristics; the type is uncertain.",
        )
    if best < MIN_WINNING_SCORE:
        return ClassificationNote(
            code="insufficient_evidence",
            message="Too few characteristics were reported to support an avalanche type.",
        )
    if avalanche_type != expected_type:
        declared = avalanche_type.value if avalanche_type else "unspecified"
        return ClassificationNote(
            code="type_mismatch",
            message=(
                f"Visual characteristics indicate {expected_type.value} (score {best}) "
                f"but the reply classified the avalanche as {declared}."
            ),
        )
    return None
