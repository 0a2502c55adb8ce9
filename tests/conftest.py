"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from helpers import RecordingResponder
from voicerelay.dispatcher import Dispatcher
from voicerelay.store import ConversationStore


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def responder():
    return RecordingResponder()


@pytest.fixture
def completion():
    client = MagicMock()
    client.complete = AsyncMock(return_value="Здравствуйте!")
    return client


@pytest.fixture
def transcriber():
    t = MagicMock()
    t.transcribe = AsyncMock(return_value="")
    return t


@pytest.fixture
def synthesizer():
    s = MagicMock()
    s.synthesize = AsyncMock(return_value=b"OggS-voice")
    return s


@pytest.fixture
def dispatcher(store, completion, transcriber, synthesizer, responder):
    return Dispatcher(store, completion, transcriber, synthesizer, responder)
