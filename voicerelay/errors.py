"""Exception hierarchy for the relay pipeline.

Adapters raise these; the dispatcher decides which ones reach the user.
"""


class RelayError(Exception):
    """Base class for all relay errors."""
    pass


class TranscriptionError(RelayError):
    """Speech-to-text failed (download, network, non-2xx or empty result)."""
    pass


class SynthesisError(RelayError):
    """Text-to-speech or the ffmpeg re-encode step failed."""
    pass
