"""Deterministic choice of one encoding from the upstream's format list.

Selection filters the descriptors by capability, ranks the survivors by the
dimension the quality hint names, and returns the top entry. Ranking uses a
stable sort, so ties keep the upstream order and the same input always yields
the same descriptor.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..models.media import EncodingDescriptor
from .errors import EncodingNotFoundError

logger = logging.getLogger(__name__)

FILTERS: Dict[str, Callable[[EncodingDescriptor], bool]] = {
    "audioonly": lambda d: d.has_audio and not d.has_video,
    "audio": lambda d: d.has_audio,
    "videoonly": lambda d: d.has_video and not d.has_audio,
    "video": lambda d: d.has_video,
    "audioandvideo": lambda d: d.has_audio and d.has_video,
}

@dataclass(frozen=True)
class FormatCriteria:
    quality: str = "highestaudio"
    filter: Optional[str] = "audioonly"

    def __post_init__(self):
        if self.filter is not None and self.filter not in FILTERS:
            raise ValueError(f"Unknown format filter: {self.filter}")


def audio_rate(descriptor: EncodingDescriptor) -> float:
    if descriptor.audio_bitrate is not None:
        return descriptor.audio_bitrate
    if descriptor.has_audio and not descriptor.has_video and descriptor.bitrate is not None:
        return descriptor.bitrate
    return 0.0


def _video_rank(descriptor: EncodingDescriptor) -> Tuple[int, float]:
    return (descriptor.height or 0, descriptor.bitrate or 0.0)


def _highest_rank(descriptor: EncodingDescriptor) -> Tuple[bool, int, float, float]:
    # Muxed audio+video first, then resolution, then bitrate
    return (
        descriptor.has_audio and descriptor.has_video,
        descriptor.height or 0,
        descriptor.bitrate or 0.0,
        audio_rate(descriptor),
    )


def _lowest_rank(descriptor: EncodingDescriptor) -> Tuple[bool, int, float, float]:
    return (
        not (descriptor.has_audio and descriptor.has_video),
        descriptor.height or 0,
        descriptor.bitrate or 0.0,
        audio_rate(descriptor),
    )


def select_format(descriptors: Sequence[EncodingDescriptor], criteria: FormatCriteria) -> EncodingDescriptor:
    """Pick the encoding that best satisfies ``criteria``.

    Raises:
        EncodingNotFoundError: If no descriptor survives the filter (or, for
            an exact format id, none matches it).
    """
    candidates = list(descriptors)
    if criteria.filter is not None:
        candidates = [d for d in candidates if FILTERS[criteria.filter](d)]

    quality = criteria.quality
    if quality in ("highestaudio", "lowestaudio"):
        candidates = [d for d in candidates if d.has_audio]
        ranked = sorted(candidates, key=audio_rate, reverse=quality == "highestaudio")
    elif quality in ("highestvideo", "lowestvideo"):
        candidates = [d for d in candidates if d.has_video]
        ranked = sorted(candidates, key=_video_rank, reverse=quality == "highestvideo")
    elif quality == "highest":
        ranked = sorted(candidates, key=_highest_rank, reverse=True)
    elif quality == "lowest":
        ranked = sorted(candidates, key=_lowest_rank)
    else:
        # Anything else names a specific upstream format id
        ranked = [d for d in candidates if d.format_id == quality]

    if not ranked:
        raise EncodingNotFoundError(
            f"No format matches quality={quality!r} filter={criteria.filter!r} "
            f"({len(descriptors)} formats available)"
        )

    selected = ranked[0]
    logger.debug(
        f"Selected format {selected.format_id} ({selected.container}, "
        f"{audio_rate(selected):.0f}kbps audio) for quality={quality} filter={criteria.filter}"
    )
    return selected
