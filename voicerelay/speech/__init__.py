"""Speech adapters — Whisper transcription and TTS voice notes."""

from .encoder import OpusEncoder
from .synthesis import Synthesizer
from .transcription import Transcriber

__all__ = ["OpusEncoder", "Synthesizer", "Transcriber"]
