"""Text-to-speech — voice notes through the ElevenLabs proxy."""

import logging
from typing import Optional

import httpx

from ..directives import Directive, strip_tag
from ..errors import SynthesisError
from .encoder import OpusEncoder

logger = logging.getLogger("voicerelay.speech.synthesis")


class Synthesizer:
    """Turn reply text into an Ogg/Opus voice clip.

    The proxy's /tg-voice endpoint returns mp3; the encoder converts it to
    the format Telegram expects for voice notes.
    """

    def __init__(
        self,
        proxy_url: str,
        encoder: OpusEncoder,
        emotion: str = "neutral",
        timeout: float = 60.0,
    ):
        self.proxy_url = proxy_url.rstrip("/")
        self.encoder = encoder
        self.emotion = emotion
        self.timeout = timeout

    async def synthesize(self, text: str) -> Optional[bytes]:
        """Synthesize a voice clip.

        Returns:
            Ogg/Opus bytes, or None if nothing is left to say after
            stripping [voice] tags

        Raises:
            SynthesisError: TTS call or re-encode failed
        """
        clean = strip_tag(text or "", Directive.VOICE).strip()
        if not clean:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.proxy_url}/tg-voice",
                    json={"text": clean, "emotion": self.emotion},
                )
        except httpx.HTTPError as e:
            raise SynthesisError(f"TTS request failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise SynthesisError(f"TTS {resp.status_code}")

        mp3 = resp.content
        if not mp3:
            raise SynthesisError("TTS returned no audio")

        logger.info(f"TTS: {len(clean)} chars -> {len(mp3)} bytes mp3")
        return await self.encoder.encode(mp3)
