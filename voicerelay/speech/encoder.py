"""Audio re-encode — mp3 to Telegram voice-note format (Opus in Ogg)."""

import asyncio
import logging

from ..errors import SynthesisError
from ._files import scratch_paths

logger = logging.getLogger("voicerelay.speech.encoder")


class OpusEncoder:
    """Re-encode compressed audio with ffmpeg: mono, 48 kHz, 64 kbit/s, voip."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", temp_dir: str = "/tmp", timeout: float = 60.0):
        self.ffmpeg_path = ffmpeg_path
        self.temp_dir = temp_dir
        self.timeout = timeout

    def build_command(self, src: str, dst: str) -> list[str]:
        return [
            self.ffmpeg_path, "-y", "-loglevel", "error",
            "-i", src,
            "-vn",
            "-c:a", "libopus",
            "-ar", "48000",
            "-b:a", "64k",
            "-ac", "1",
            "-application", "voip",
            "-f", "ogg",
            dst,
        ]

    async def encode(self, audio: bytes) -> bytes:
        """Convert mp3 bytes to an Ogg/Opus voice clip.

        Raises:
            SynthesisError: scratch files unusable, ffmpeg missing, timed out
                or exited non-zero
        """
        with scratch_paths(self.temp_dir, ".mp3", ".ogg") as (src, dst):
            try:
                with open(src, "wb") as f:
                    f.write(audio)
            except OSError as e:
                raise SynthesisError(f"Cannot write scratch file {src}: {e}") from e

            try:
                proc = await asyncio.create_subprocess_exec(
                    *self.build_command(src, dst),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise SynthesisError(f"Cannot run ffmpeg ({self.ffmpeg_path}): {e}") from e

            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                proc.kill()
                await proc.wait()
                raise SynthesisError(f"ffmpeg timed out after {self.timeout:.0f}s") from e

            if proc.returncode != 0:
                err = stderr.decode(errors="replace").strip()[:300]
                raise SynthesisError(f"ffmpeg exited with {proc.returncode}: {err}")

            try:
                with open(dst, "rb") as f:
                    encoded = f.read()
            except OSError as e:
                raise SynthesisError(f"Cannot read ffmpeg output {dst}: {e}") from e

        logger.debug(f"Encoded {len(audio)} bytes mp3 -> {len(encoded)} bytes ogg")
        return encoded
