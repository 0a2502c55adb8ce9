"""voicerelay — Telegram relay between chat users and a language model."""

__version__ = "0.1.0"
