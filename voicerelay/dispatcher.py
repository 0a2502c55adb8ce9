"""Dispatcher — turns one inbound chat event into outbound actions.

Pipeline for an ordinary message:
  resolve text (direct or transcribed) → promo code check → append user turn
  → completion → append assistant turn → parse directives → reply

A chat is either in the normal state or waiting for a new persona prompt
(after /setprompt). Events for the same chat are serialized through the
store's per-chat lock; different chats never wait on each other.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .directives import Directive, ParsedReply, parse_directives
from .errors import SynthesisError
from .prompts import (
    GENERIC_ERROR_REPLY,
    LEAD_FORM_FALLBACK,
    PROMO_CODE_REPLY,
    PROMPT_EDIT_REQUEST,
    PROMPT_EMPTY,
    PROMPT_RESET,
    PROMPT_UPDATED,
    PROMPT_VOICE_EMPTY,
    VOICE_NOT_RECOGNIZED_REPLY,
    is_promo_code,
)
from .store import ConversationStore

logger = logging.getLogger("voicerelay.dispatcher")


@dataclass
class InboundEvent:
    """A message from the transport, already reduced to what the pipeline needs."""
    chat_id: int
    text: Optional[str] = None
    voice: Any = None  # transport attachment handed to the transcriber


class Responder(Protocol):
    """Outbound actions the transport must support."""

    async def send_text(self, chat_id: int, text: str): ...

    async def send_contact_request(self, chat_id: int, text: str): ...

    async def send_voice(self, chat_id: int, audio: bytes): ...


class Dispatcher:
    """Per-event orchestration over the store and the three adapters."""

    def __init__(self, store: ConversationStore, completion, transcriber, synthesizer, responder: Optional[Responder] = None):
        self.store = store
        self.completion = completion
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.responder = responder

    def set_responder(self, responder: Responder):
        """Attach the transport. Called by the channel once it is built."""
        self.responder = responder

    # ── Commands ─────────────────────────────────────────────

    async def edit_prompt(self, chat_id: int):
        """/setprompt — the next message becomes the persona prompt."""
        self.store.set_awaiting_prompt(chat_id, True)
        logger.info(f"[{chat_id}] waiting for new prompt")
        await self.responder.send_text(chat_id, PROMPT_EDIT_REQUEST)

    async def reset_prompt(self, chat_id: int):
        """/resetprompt — drop the custom prompt (and any pending edit)."""
        self.store.set_prompt_override(chat_id, None)
        self.store.set_awaiting_prompt(chat_id, False)
        logger.info(f"[{chat_id}] prompt reset")
        await self.responder.send_text(chat_id, PROMPT_RESET)

    # ── Messages ─────────────────────────────────────────────

    async def handle(self, event: InboundEvent):
        """Handle one inbound message event."""
        chat_id = event.chat_id
        async with self.store.lock(chat_id):
            if self.store.get(chat_id).awaiting_prompt:
                await self._consume_prompt(event)
                return

            text = await self._resolve_text(event)
            if text is None:
                return

            if is_promo_code(text):
                logger.info(f"[{chat_id}] promo code accepted")
                await self.responder.send_text(chat_id, PROMO_CODE_REPLY)
                return

            self.store.append_turn(chat_id, "user", text)

            try:
                await self._reply(chat_id)
            except Exception as e:
                logger.error(f"[{chat_id}] pipeline error: {type(e).__name__}: {e}", exc_info=True)
                await self.responder.send_text(chat_id, GENERIC_ERROR_REPLY)

    async def _resolve_text(self, event: InboundEvent) -> Optional[str]:
        """Text to act on, or None when the event should produce nothing more.

        Sends the "could not understand" notice for voice that yields no text.
        """
        if event.voice is not None:
            text = await self.transcriber.transcribe(event.voice)
            if not text:
                await self.responder.send_text(event.chat_id, VOICE_NOT_RECOGNIZED_REPLY)
                return None
            logger.info(f"[{event.chat_id}] transcribed: {text[:100]}")
            return text

        text = (event.text or "").strip()
        return text or None

    async def _consume_prompt(self, event: InboundEvent):
        """Use this event as the new persona prompt."""
        chat_id = event.chat_id

        if event.voice is not None:
            text = await self.transcriber.transcribe(event.voice)
            if not text:
                # Stay in edit mode so the user can try again.
                await self.responder.send_text(chat_id, PROMPT_VOICE_EMPTY)
                return
        else:
            text = (event.text or "").strip()

        self.store.set_awaiting_prompt(chat_id, False)
        if text:
            self.store.set_prompt_override(chat_id, text)
            logger.info(f"[{chat_id}] prompt updated ({len(text)} chars)")
            await self.responder.send_text(chat_id, PROMPT_UPDATED)
        else:
            self.store.set_prompt_override(chat_id, None)
            await self.responder.send_text(chat_id, PROMPT_EMPTY)

    async def _reply(self, chat_id: int):
        """Completion call and directive dispatch for the latest user turn."""
        state = self.store.get(chat_id)
        raw = await self.completion.complete(self.store.history(chat_id), state.effective_prompt)
        parsed = parse_directives(raw)

        # History keeps the tag-free text so tags are not replayed to the model.
        if parsed.plain_text:
            self.store.append_turn(chat_id, "assistant", parsed.plain_text)

        if parsed.directives:
            logger.debug(f"[{chat_id}] directives: {sorted(d.value for d in parsed.directives)}")

        await self._deliver(chat_id, parsed)

    async def _deliver(self, chat_id: int, parsed: ParsedReply):
        """Pick the outbound action. Lead form wins over voice; voice replaces text."""
        if parsed.has(Directive.OPEN_LEAD_FORM):
            await self.responder.send_contact_request(chat_id, parsed.plain_text or LEAD_FORM_FALLBACK)
            return

        if parsed.has(Directive.VOICE):
            await self._send_voice(chat_id, parsed.plain_text)
            return

        if parsed.plain_text:
            await self.responder.send_text(chat_id, parsed.plain_text)

    async def _send_voice(self, chat_id: int, text: str):
        try:
            audio = await self.synthesizer.synthesize(text)
        except SynthesisError as e:
            logger.warning(f"[{chat_id}] TTS error: {e}")
            return

        if not audio:
            return
        try:
            await self.responder.send_voice(chat_id, audio)
        except Exception as e:
            logger.warning(f"[{chat_id}] voice send failed: {type(e).__name__}: {e}")
