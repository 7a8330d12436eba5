"""
HLS quality preset catalog and selection.
"""

import logging

from app.models.schemas import QualityPreset

logger = logging.getLogger(__name__)

# Ordered highest to lowest. Bitrates in kbps.
QUALITY_PRESETS: tuple[QualityPreset, ...] = (
    QualityPreset(
        name="1080p", width=1920, height=1080,
        video_bitrate=5000, max_bitrate=5000, buffer_size=10000,
        audio_bitrate=128, profile="high", level="4.0",
    ),
    QualityPreset(
        name="720p", width=1280, height=720,
        video_bitrate=2800, max_bitrate=2800, buffer_size=5600,
        audio_bitrate=128, profile="high", level="3.1",
    ),
    QualityPreset(
        name="480p", width=854, height=480,
        video_bitrate=1400, max_bitrate=1400, buffer_size=2800,
        audio_bitrate=96, profile="main", level="3.0",
    ),
    QualityPreset(
        name="360p", width=640, height=360,
        video_bitrate=800, max_bitrate=800, buffer_size=1600,
        audio_bitrate=96, profile="baseline", level="3.0",
    ),
)


def select_qualities(
    width: int,
    height: int,
    presets: tuple[QualityPreset, ...] | list[QualityPreset] = QUALITY_PRESETS,
) -> list[QualityPreset]:
    """
    Select presets that fit within the source resolution.

    Never upscales: a preset applies only if both its width and height
    are less than or equal to the source's. Catalog order is preserved.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        presets: Preset catalog (default: built-in)

    Returns:
        Applicable presets, possibly empty
    """
    selected = [p for p in presets if p.width <= width and p.height <= height]
    logger.debug(
        f"Quality selection for {width}x{height}: {[p.name for p in selected]}"
    )
    return selected


def get_preset(
    name: str,
    presets: tuple[QualityPreset, ...] | list[QualityPreset] = QUALITY_PRESETS,
) -> QualityPreset | None:
    """Look up a preset by name."""
    return next((p for p in presets if p.name == name), None)


def build_presets(raw_presets: list[dict] | None) -> tuple[QualityPreset, ...]:
    """
    Build a catalog from config dictionaries.

    Falls back to the built-in catalog when raw_presets is empty.
    Entries are sorted by height, highest first.
    """
    if not raw_presets:
        return QUALITY_PRESETS

    presets = [QualityPreset(**item) for item in raw_presets]
    presets.sort(key=lambda p: (p.height, p.width), reverse=True)
    logger.info(f"Loaded {len(presets)} quality presets: {[p.name for p in presets]}")
    return tuple(presets)
