"""Quality tier resolution and metering event selection."""

from datetime import datetime
from typing import Dict, Optional, Union

from .models import (
    FLAT_CLIP_EVENT,
    QualityConfig,
    QualityTier,
    Resolution,
)

QUALITY_CONFIGS: Dict[QualityTier, QualityConfig] = {
    QualityTier.P360: QualityConfig(QualityTier.P360, 360, "clip_processed_360p"),
    QualityTier.P480: QualityConfig(QualityTier.P480, 480, "clip_processed_480p"),
    QualityTier.P720: QualityConfig(QualityTier.P720, 720, "clip_processed_720p"),
    QualityTier.P1080: QualityConfig(QualityTier.P1080, 1080, "clip_processed_1080p"),
}

FALLBACK_TIER = QualityTier.P480


def parse_tier(value: Union[QualityTier, str, None]) -> Optional[QualityTier]:
    """Return the tier named by *value*, or None when it is not a known tier."""
    if isinstance(value, QualityTier):
        return value
    try:
        return QualityTier(str(value).strip().lower())
    except ValueError:
        return None


def resolve(tier: Union[QualityTier, str, None]) -> QualityConfig:
    """Map a requested tier to its resolution cap and metering event."""
    return QUALITY_CONFIGS[parse_tier(tier) or FALLBACK_TIER]


def classify(height: Optional[int]) -> QualityTier:
    """Bucket a measured pixel height into the nearest tier at or below it."""
    if not height or height < 480:
        return QualityTier.P360
    if height < 720:
        return QualityTier.P480
    if height < 1080:
        return QualityTier.P720
    return QualityTier.P1080


def is_fair_pricing(now: datetime, cutover: datetime) -> bool:
    """Tiered pricing by delivered quality applies from the cutover onwards."""
    return now >= cutover


def chargeable_event(
    requested: Union[QualityTier, str],
    resolution: Optional[Resolution],
    now: datetime,
    cutover: datetime,
) -> str:
    """
    Pick the metering event for a delivered clip.

    Before the cutover every clip is charged the flat event. From the cutover
    the event follows the delivered resolution, falling back to the requested
    tier when the resolution could not be measured.
    """
    if not is_fair_pricing(now, cutover):
        return FLAT_CLIP_EVENT

    if resolution and resolution.height:
        return QUALITY_CONFIGS[classify(resolution.height)].metering_event

    return resolve(requested).metering_event


def quality_warning(
    requested: Union[QualityTier, str],
    resolution: Optional[Resolution],
    now: datetime,
    cutover: datetime,
) -> Optional[str]:
    """Describe a delivered resolution that falls short of the requested cap."""
    config = resolve(requested)
    if not resolution or resolution.height >= config.max_height:
        return None

    notice = (
        f"⚠️  QUALITY NOTICE: Requested {config.tier.value} but video source only "
        f"available at {resolution.label}."
    )
    if is_fair_pricing(now, cutover):
        return f"{notice} Charged {classify(resolution.height).value} rate (fair pricing)."
    return f"{notice} Charged flat rate."
