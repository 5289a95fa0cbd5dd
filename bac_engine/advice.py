"""Safety messaging derived from an estimate.

Conservative copy for display next to the BAC. It is educational only and
never guarantees legal or safe driving.
"""

from datetime import datetime

from bac_engine.calculations import bac_level
from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.models import BACEstimate, BACLevel

# Below legal but still measurably impaired.
CONSERVATIVE_LIMIT_BAC = 0.02

LEVEL_ADVICE = {
    BACLevel.SAFE: "You appear to be at a low BAC level. Remember that impairment can begin with the first drink.",
    BACLevel.CAUTION: (
        "You are approaching the legal limit. It's recommended to slow down or stop drinking "
        "and consider arranging a ride if needed."
    ),
    BACLevel.WARNING: (
        "You are at or above the legal limit for driving. DO NOT drive. "
        "Consider calling a ride-sharing service or a friend."
    ),
    BACLevel.DANGER: (
        "Your BAC is at a high level. DO NOT drive under any circumstances. "
        "Stay hydrated and consider getting medical help if you feel unwell."
    ),
}


def format_minutes(total_minutes: int) -> str:
    hours, minutes = divmod(max(0, total_minutes), 60)
    if hours > 0:
        return f"{hours} hr {minutes:02d} min"
    return f"{minutes:02d} min"


def time_until_legal_text(estimate: BACEstimate, now: datetime, config: EngineConfig = DEFAULT_CONFIG) -> str:
    # matches legal_at: a BAC exactly at the limit is already legal
    if estimate.bac <= config.legal_level:
        return "You are under the legal limit"
    return format_minutes(estimate.minutes_until_legal(now))


def time_until_sober_text(estimate: BACEstimate, now: datetime) -> str:
    if estimate.bac <= 0:
        return "You are sober"
    return format_minutes(estimate.minutes_until_sober(now))


def level_advice(estimate: BACEstimate, config: EngineConfig = DEFAULT_CONFIG) -> str:
    return LEVEL_ADVICE[bac_level(estimate.bac, config)]


def get_drive_advice(estimate: BACEstimate, now: datetime, config: EngineConfig = DEFAULT_CONFIG) -> dict:
    """Return conservative drive-risk guidance from an estimate."""
    bac_now = estimate.bac
    legal = config.legal_level

    if bac_now >= legal:
        return {
            "status": "do_not_drive",
            "title": "Above legal limit",
            "message": f"Estimated BAC is at or above {legal:.2f}%. Do not drive.",
            "action": "Use a rideshare, taxi, or sober driver now.",
            "legal_limit_bac": legal,
        }

    if bac_now >= config.caution_level:
        return {
            "status": "do_not_drive",
            "title": "Likely impaired",
            "message": f"Estimated BAC is below {legal:.2f}% but still in a high-risk impairment range.",
            "action": "Do not drive. Wait and use a non-driving option.",
            "legal_limit_bac": legal,
        }

    if bac_now >= CONSERVATIVE_LIMIT_BAC:
        wait = format_minutes(estimate.minutes_until_sober(now))
        return {
            "status": "do_not_drive",
            "title": "Alcohol still present",
            "message": "Estimated BAC is low but not near zero. Driving is still risky.",
            "action": f"Do not drive. Wait about {wait} and recheck.",
            "legal_limit_bac": legal,
        }

    if bac_now > 0:
        return {
            "status": "caution",
            "title": "Residual alcohol",
            "message": "Estimated BAC is very low but not zero.",
            "action": "Safest choice is still not to drive.",
            "legal_limit_bac": legal,
        }

    return {
        "status": "ok",
        "title": "No alcohol in system",
        "message": "Estimated BAC is 0.000 right now.",
        "action": "If you have not consumed alcohol, impairment risk is lower.",
        "legal_limit_bac": legal,
    }
