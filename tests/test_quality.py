"""Tests for quality tier resolution and metering event selection."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper import quality
from youtube_clipper.models import QualityTier, Resolution

CUTOVER = datetime(2025, 10, 9, tzinfo=timezone.utc)
BEFORE = CUTOVER - timedelta(days=1)
AFTER = CUTOVER + timedelta(days=1)


def test_resolve_maps_each_tier_to_cap_and_event():
    assert quality.resolve("360p").max_height == 360
    assert quality.resolve(QualityTier.P1080).metering_event == "clip_processed_1080p"
    config = quality.resolve("720p")
    assert (config.max_height, config.metering_event) == (720, "clip_processed_720p")


def test_resolve_unknown_tier_defaults_to_480p():
    assert quality.resolve("4k").tier is QualityTier.P480
    assert quality.resolve(None).max_height == 480


@pytest.mark.parametrize(
    "height, expected",
    [
        (None, QualityTier.P360),
        (0, QualityTier.P360),
        (359, QualityTier.P360),
        (360, QualityTier.P360),
        (479, QualityTier.P360),
        (480, QualityTier.P480),
        (719, QualityTier.P480),
        (720, QualityTier.P720),
        (1079, QualityTier.P720),
        (1080, QualityTier.P1080),
        (4000, QualityTier.P1080),
    ],
)
def test_classify_boundaries(height, expected):
    assert quality.classify(height) is expected


def test_classify_is_monotonic():
    order = list(QualityTier)
    heights = [0, 359, 360, 479, 480, 719, 720, 1079, 1080, 4000]
    ranks = [order.index(quality.classify(h)) for h in heights]
    assert ranks == sorted(ranks)


def test_flat_event_before_cutover_regardless_of_resolution():
    for resolution in (None, Resolution(640, 360), Resolution(1920, 1080)):
        assert quality.chargeable_event("1080p", resolution, BEFORE, CUTOVER) == "clip_processed"


def test_observed_tier_charged_after_cutover():
    event = quality.chargeable_event("1080p", Resolution(1280, 720), AFTER, CUTOVER)
    assert event == "clip_processed_720p"


def test_requested_tier_charged_when_resolution_unknown():
    assert quality.chargeable_event("480p", None, AFTER, CUTOVER) == "clip_processed_480p"
    assert quality.chargeable_event("480p", None, CUTOVER, CUTOVER) == "clip_processed_480p"


def test_quality_warning_wording_follows_pricing_mode():
    delivered = Resolution(640, 360)

    assert quality.quality_warning("720p", None, AFTER, CUTOVER) is None
    assert quality.quality_warning("720p", Resolution(1280, 720), AFTER, CUTOVER) is None

    before = quality.quality_warning("720p", delivered, BEFORE, CUTOVER)
    after = quality.quality_warning("720p", delivered, AFTER, CUTOVER)
    assert "Requested 720p" in before and before.endswith("Charged flat rate.")
    assert after.endswith("Charged 360p rate (fair pricing).")
