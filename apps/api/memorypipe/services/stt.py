# apps/api/memorypipe/services/stt.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class STTResult:
    language: str
    duration_seconds: float | None
    segments: list[dict[str, Any]]  # each: {text, start, duration}

    @property
    def text(self) -> str:
        return " ".join(s["text"] for s in self.segments).strip()


class WhisperTranscriber:
    """
    Local speech-to-text with faster-whisper.

    The model is loaded on first use and kept for the life of this instance
    (one instance per worker process).
    """

    def __init__(self, model_size: str = "base", device: str = "cpu", compute_type: str = "int8") -> None:
        self.model_size = model_size  # tiny/base/small/medium/large-v3
        self.device = device
        self.compute_type = compute_type  # int8 is fast on CPU
        self._model = None
        self._lock = threading.Lock()

    def _get_model(self):
        with self._lock:
            if self._model is None:
                from faster_whisper import WhisperModel

                self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
            return self._model

    def transcribe(self, audio_path: str, *, language: str | None = None) -> STTResult:
        """
        Transcribe audio and return timestamped segments: [{text, start, duration}, ...]
        """
        model = self._get_model()

        segments_iter, info = model.transcribe(
            audio_path,
            language=language,  # optional hint
            vad_filter=True,  # good default to reduce empty/noise segments
            beam_size=5,
        )

        segs: list[dict[str, Any]] = []
        for s in segments_iter:
            txt = (s.text or "").strip()
            if not txt:
                continue
            start = float(s.start)
            end = float(s.end)
            segs.append({"text": txt, "start": start, "duration": float(max(0.0, end - start))})

        used_lang = (info.language or "").strip() if info else ""
        if not used_lang:
            used_lang = language or "unknown"

        duration = float(info.duration) if info and getattr(info, "duration", None) else None
        return STTResult(language=used_lang, duration_seconds=duration, segments=segs)
