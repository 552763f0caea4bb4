from __future__ import annotations

from pathlib import Path

from memorypipe.core.errors import SourceFileMissing, UnsupportedAudioFormat

# extension -> content type accepted by the transcription providers
SUPPORTED_AUDIO_FORMATS: dict[str, str] = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".aac": "audio/aac",
}


class UploadStore:
    """Resolves transcription file references against the upload directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def resolve(self, path_ref: str) -> Path:
        p = Path(path_ref)
        if not p.is_absolute():
            p = self.root / p
        if not p.is_file():
            raise SourceFileMissing(f"Audio file not found: {path_ref}")
        return p


def detect_audio_format(path: str | Path) -> str:
    """Return the content type for a supported audio file, or raise UnsupportedAudioFormat."""
    suffix = Path(path).suffix.lower()
    content_type = SUPPORTED_AUDIO_FORMATS.get(suffix)
    if content_type is None:
        raise UnsupportedAudioFormat(f"Unsupported audio format: {suffix or 'unknown'}")
    return content_type
