"""Test doubles shared across test modules."""

from unittest.mock import AsyncMock, MagicMock


class RecordingResponder:
    """Responder that records every outbound action."""

    def __init__(self):
        self.actions: list[tuple] = []

    async def send_text(self, chat_id, text):
        self.actions.append(("text", chat_id, text))

    async def send_contact_request(self, chat_id, text):
        self.actions.append(("contact", chat_id, text))

    async def send_voice(self, chat_id, audio):
        self.actions.append(("voice", chat_id, audio))


def make_http_client(response=None, side_effect=None) -> AsyncMock:
    """AsyncMock usable as `async with httpx.AsyncClient(...) as client`."""
    client = AsyncMock()
    client.post = AsyncMock(return_value=response, side_effect=side_effect)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


def make_response(status_code=200, json_data=None, text="", content=b"") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.text = text
    response.content = content
    return response
