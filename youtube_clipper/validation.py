"""Run request parsing with aggregated validation."""

from typing import Dict, List, Optional

from .errors import ValidationError
from .models import (
    DEFAULT_MAX_CLIP_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_QUALITY,
    MAX_CLIPS_PER_RUN,
    QUALITY_CHOICES,
    ClipJobRequest,
    ClipRequest,
    ProxyOptions,
)
from .quality import parse_tier
from .sources import clean_video_url
from .timecode import time_to_seconds


def _missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _duration_limit_text(max_clip_seconds: int) -> str:
    if max_clip_seconds % 60 == 0:
        return f"{max_clip_seconds // 60} minutes ({max_clip_seconds} seconds)"
    return f"{max_clip_seconds} seconds"


def _validate_clips(raw_clips, max_clips: int, max_clip_seconds: int, errors: List[str]) -> List[ClipRequest]:
    if not isinstance(raw_clips, list):
        errors.append("Clips must be provided as an array")
        return []
    if not raw_clips:
        errors.append("At least one clip must be specified")
        return []
    if len(raw_clips) > max_clips:
        errors.append(f"Maximum {max_clips} clips allowed per run for cost and performance reasons")
        return []

    clips: List[ClipRequest] = []
    seen_names = set()
    for index, raw in enumerate(raw_clips, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Clip {index}: Must be an object with name, start and end")
            continue

        name = raw.get("name")
        start = raw.get("start")
        end = raw.get("end")
        clip_valid = True

        if _missing(start) or _missing(end):
            errors.append(f"Clip {index}: Both start and end times are required")
            clip_valid = False
        else:
            duration = time_to_seconds(end) - time_to_seconds(start)
            if duration <= 0:
                errors.append(f"Clip {index}: End time must be after start time")
                clip_valid = False
            elif duration > max_clip_seconds:
                errors.append(
                    f"Clip {index}: Maximum clip duration is {_duration_limit_text(max_clip_seconds)}"
                )
                clip_valid = False

        if not isinstance(name, str) or not name.strip():
            errors.append(f"Clip {index}: Name is required and must be a string")
            clip_valid = False
        elif name in seen_names:
            errors.append(f"Clip {index}: Duplicate clip name \"{name}\"")
            clip_valid = False
        else:
            seen_names.add(name)

        label = raw.get("label")
        if clip_valid:
            clips.append(
                ClipRequest(
                    name=name,
                    start=str(start),
                    end=str(end),
                    label=label if isinstance(label, str) and label else None,
                )
            )
    return clips


def _validate_proxy(raw_proxy, errors: List[str]) -> ProxyOptions:
    if raw_proxy is None:
        return ProxyOptions()
    if not isinstance(raw_proxy, dict):
        errors.append("proxy must be an object")
        return ProxyOptions()

    use_proxy = raw_proxy.get("useProxy")
    if use_proxy is not None and not isinstance(use_proxy, bool):
        errors.append("proxy.useProxy must be a boolean")
        use_proxy = None

    groups = raw_proxy.get("proxyGroups") or []
    if not isinstance(groups, list) or not all(isinstance(group, str) and group for group in groups):
        errors.append("proxy.proxyGroups must be a list of strings")
        groups = []

    return ProxyOptions(use_proxy=use_proxy, proxy_groups=list(groups))


def parse_request(
    raw: Dict[str, object],
    max_clips: int = MAX_CLIPS_PER_RUN,
    max_clip_seconds: int = DEFAULT_MAX_CLIP_SECONDS,
) -> ClipJobRequest:
    """
    Validate a raw run request and build a ``ClipJobRequest``.

    Every violation is collected before raising, so the caller sees all of
    them in one ``ValidationError``.
    """
    if not isinstance(raw, dict):
        raise ValidationError(["Run request must be a JSON object"])

    errors: List[str] = []

    video_url = raw.get("videoUrl")
    cleaned = None
    if not isinstance(video_url, str) or not video_url.strip():
        errors.append("Video URL is required and must be a string")
    else:
        try:
            cleaned = clean_video_url(video_url)
        except ValueError as exc:
            errors.append(f"Invalid video URL: {exc}")

    clips = _validate_clips(raw.get("clips"), max_clips, max_clip_seconds, errors)

    raw_quality = raw.get("quality")
    quality = DEFAULT_QUALITY if raw_quality is None else parse_tier(raw_quality)
    if quality is None:
        errors.append(f"Quality must be one of: {', '.join(QUALITY_CHOICES)}")

    max_retries = raw.get("maxRetries", DEFAULT_MAX_RETRIES)
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries <= 0:
        errors.append("maxRetries must be a positive integer")

    proxy = _validate_proxy(raw.get("proxy"), errors)

    use_cookies = raw.get("useCookies", False)
    if not isinstance(use_cookies, bool):
        errors.append("useCookies must be a boolean")
    cookies: Optional[str] = raw.get("cookies")
    if cookies is not None and not isinstance(cookies, str):
        errors.append("cookies must be a string")

    enable_fallbacks = raw.get("enableFallbacks", True)
    if not isinstance(enable_fallbacks, bool):
        errors.append("enableFallbacks must be a boolean")

    if errors:
        raise ValidationError(errors)

    return ClipJobRequest(
        video_url=cleaned.url,
        video_identity=cleaned.url,
        clips=clips,
        quality=quality,
        proxy=proxy,
        use_cookies=use_cookies,
        cookies=cookies or None,
        max_retries=max_retries,
        enable_fallbacks=enable_fallbacks,
        removed_params=list(cleaned.removed_params),
    )
