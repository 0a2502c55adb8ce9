"""Speech-to-text — transcribe Telegram voice notes with Whisper."""

import logging
import os

import httpx

from ..errors import TranscriptionError
from ._files import scratch_paths

logger = logging.getLogger("voicerelay.speech.transcription")

DEFAULT_STT_MODEL = "whisper-1"
OPENAI_TRANSCRIPTION_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"


class Transcriber:
    """Whisper transcription adapter.

    transcribe() never raises: any failure is logged and turned into an
    empty string, which callers treat as "could not understand".
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_STT_MODEL,
        endpoint: str = OPENAI_TRANSCRIPTION_ENDPOINT,
        temp_dir: str = "/tmp",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.temp_dir = temp_dir
        self.timeout = timeout

    async def transcribe(self, attachment) -> str:
        """Transcribe a voice attachment.

        Args:
            attachment: Telegram Voice/Audio object (anything with an async
                get_file() returning a File with download_to_drive())

        Returns:
            Recognized text, or "" if anything went wrong
        """
        try:
            tg_file = await attachment.get_file()
            with scratch_paths(self.temp_dir, ".oga") as (path,):
                await tg_file.download_to_drive(path)
                with open(path, "rb") as f:
                    audio = f.read()
                return await self.transcribe_bytes(audio, os.path.basename(path))
        except Exception as e:
            logger.error(f"STT error: {type(e).__name__}: {e}")
            return ""

    async def transcribe_bytes(self, audio: bytes, filename: str = "voice.oga") -> str:
        """Send audio to the transcription endpoint.

        Returns:
            Recognized text, "" if the service recognized nothing

        Raises:
            TranscriptionError: network failure or non-2xx response
        """
        if not audio:
            raise TranscriptionError("Voice file is empty (0 bytes)")

        files = {
            "file": (filename, audio, "audio/ogg"),
        }
        data = {
            "model": self.model,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    files=files,
                    data=data,
                )
        except httpx.TimeoutException as e:
            raise TranscriptionError(f"Transcription request timed out ({self.timeout:.0f}s)") from e
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if response.status_code != 200:
            raise TranscriptionError(
                f"Transcription failed: {response.status_code} - {response.text[:300]}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise TranscriptionError(f"Unparseable transcription response: {e}") from e

        text = (result.get("text") or "").strip()
        logger.info(f"Transcribed {len(audio)} bytes -> {len(text)} chars")
        return text
