"""Prompt text for terrain avalanche risk analysis.

The instruction is a versioned constant: the response parser is written
against the schema described here, so any change to the wording of the schema
must bump `PROMPT_VERSION`.
"""

PROMPT_VERSION = "2024-07-avalanche-risk-v3"

_SCHEMA_BLOCK = """{
    "overall_risk": "Low"|"Moderate"|"Considerable"|"High"|"Extreme",
    "confidence": 0.0-1.0,
    "snow_texture": "Granular"|"Blocky"|"Fluffy"|"Mixed"|"Unknown",
    "terrain_features": string[],
    "predicted_movement_pattern": string (at most 600 characters),
    "slope_angle_estimate_degrees": 0-90 | null,
    "avalanche_present": boolean,
    "avalanche_type": "powder"|"loose-snow"|"slab"|"none",
    "visual_indicators": {
        "powder_cloud": boolean,
        "fracture_line": boolean,
        "fracture_depth": "shallow"|"deep"|"variable"|null,
        "point_release": boolean,
        "debris_pattern": "fan-shaped"|"linear"|"scattered"|"none",
        "snow_density": "low"|"medium"|"high",
        "starting_width": "point"|"wide"|"undefined",
        "propagation": "fan"|"linear"|"chaotic"|"none",
        "vertical_movement": boolean,
        "lateral_spread": boolean,
        "surface_roughness": "smooth"|"rough"|"variable",
        "anchoring_points": boolean,
        "convex_rollover": boolean
    }
}"""

_GUIDELINES = """ANALYSIS GUIDELINES:
1. Overall risk uses the five-step avalanche danger scale. Judge from slope steepness, loading,
   visible instability (cracks, recent releases, cornices) and terrain traps.
2. Snow texture: Granular (individual grains visible, common in loose snow), Blocky (cohesive
   chunks, typical of slab), Fluffy (light and airy, common in powder). Use Mixed when several
   apply and Unknown when snow is not visible.
3. Terrain features: short tags such as "convex rollover", "gully", "cornice", "anchoring trees".
4. Predicted movement pattern: one or two sentences on where a release would start and run.
5. Avalanche type indicators:
   - LOOSE-SNOW: point start, fan propagation, granular snow, fan-shaped debris, no fracture line.
   - SLAB: fracture line, blocky snow, wide start, linear propagation, often lateral spread.
   - POWDER: powder cloud, fluffy snow, significant vertical movement, chaotic propagation.
   Weight primary indicators heavily and require several matching characteristics before
   declaring a type. Use "none" when no avalanche is visible."""


def build_system_prompt() -> str:
    """Return the system prompt for the terrain analyst."""
    return (
        "You are an experienced avalanche forecaster reviewing a single terrain photograph for a "
        "backcountry traveller. You are careful and conservative, and you only report what the "
        "image supports. Reply with a single JSON object and nothing else, using exactly this "
        f"structure:\n{_SCHEMA_BLOCK}\n\n{_GUIDELINES}"
    )


def build_user_prompt() -> str:
    """Return the user prompt that accompanies the image."""
    return (
        "Assess the avalanche risk of the terrain in this photograph. "
        "Fill in every field of the JSON structure; use null only for slope_angle_estimate_degrees "
        "when the slope cannot be estimated."
    )
