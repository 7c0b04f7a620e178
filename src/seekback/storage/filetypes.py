from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_MEDIA_TYPES: Mapping[str, str] = MappingProxyType(
    {
        "aiff": "audio/aiff",
        "mp3": "audio/mpeg",
    }
)
SUMMARY_EXT = "txt"
TRANSCRIPT_EXT = "vtt"


def normalize_ext(ext: str) -> str:
    return ext.strip().lstrip(".").lower()


def split_name(name: str) -> tuple[str, str]:
    """Split a filename at its last dot into ``(stem, ext)``.

    Returns an empty extension when the name has no dot.
    """

    stem, dot, ext = name.rpartition(".")
    if not dot:
        return name, ""
    return stem, ext


@dataclass(frozen=True, slots=True)
class MediaTypeRegistry:
    """Extensions that count as sample media, plus the sidecar extensions."""

    media_types: Mapping[str, str] = field(default_factory=lambda: DEFAULT_MEDIA_TYPES)
    summary_ext: str = SUMMARY_EXT
    transcript_ext: str = TRANSCRIPT_EXT

    def __post_init__(self) -> None:
        normalized = {normalize_ext(ext): ctype for ext, ctype in self.media_types.items()}
        object.__setattr__(self, "media_types", MappingProxyType(normalized))
        object.__setattr__(self, "summary_ext", normalize_ext(self.summary_ext))
        object.__setattr__(self, "transcript_ext", normalize_ext(self.transcript_ext))
        for sidecar in (self.summary_ext, self.transcript_ext):
            if sidecar in normalized:
                raise ValueError(f"Sidecar extension '{sidecar}' is also registered as media.")

    def is_media(self, ext: str) -> bool:
        return normalize_ext(ext) in self.media_types

    def content_type(self, name: str) -> str | None:
        _, ext = split_name(name)
        ext = normalize_ext(ext)
        if ext == self.transcript_ext:
            return "text/vtt"
        return self.media_types.get(ext)

    def allowed_file_types(self) -> tuple[str, ...]:
        """File types a host may serve from the samples directory."""

        return (*sorted(self.media_types), self.transcript_ext)

    def is_allowed(self, name: str) -> bool:
        _, ext = split_name(name)
        return bool(ext) and normalize_ext(ext) in self.allowed_file_types()

    def summary_name(self, sample_id: str) -> str:
        return f"{sample_id}.{self.summary_ext}"

    def transcript_name(self, sample_id: str) -> str:
        return f"{sample_id}.{self.transcript_ext}"
