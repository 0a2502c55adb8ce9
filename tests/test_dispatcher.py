"""Tests for the message-handling pipeline."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from helpers import make_http_client, make_response
from voicerelay.dispatcher import Dispatcher, InboundEvent
from voicerelay.errors import SynthesisError
from voicerelay.llm.provider import CompletionError
from voicerelay.prompts import (
    COMPLETION_FALLBACK,
    GENERIC_ERROR_REPLY,
    LEAD_FORM_FALLBACK,
    PROMO_CODE_REPLY,
    PROMPT_EDIT_REQUEST,
    PROMPT_EMPTY,
    PROMPT_RESET,
    PROMPT_UPDATED,
    PROMPT_VOICE_EMPTY,
    SYSTEM_PROMPT_BASE,
    VOICE_NOT_RECOGNIZED_REPLY,
)
from voicerelay.speech.encoder import OpusEncoder
from voicerelay.speech.synthesis import Synthesizer


class TestTextReplies:

    @pytest.mark.asyncio
    async def test_plain_reply_sent_and_recorded(self, dispatcher, store, completion, responder):
        completion.complete.return_value = "  Чем могу помочь?  "

        await dispatcher.handle(InboundEvent(chat_id=1, text="Привет"))

        assert responder.actions == [("text", 1, "Чем могу помочь?")]
        assert [(t.role, t.content) for t in store.history(1)] == [
            ("user", "Привет"), ("assistant", "Чем могу помочь?"),
        ]

    @pytest.mark.asyncio
    async def test_history_and_prompt_passed_to_completion(self, dispatcher, store, completion):
        store.append_turn(1, "user", "раньше")
        store.append_turn(1, "assistant", "ответ")

        await dispatcher.handle(InboundEvent(chat_id=1, text="сейчас"))

        history, system_prompt = completion.complete.call_args.args
        assert [t.content for t in history] == ["раньше", "ответ", "сейчас"]
        assert system_prompt.startswith(SYSTEM_PROMPT_BASE + "\n\n")

    @pytest.mark.asyncio
    async def test_empty_reply_sends_nothing(self, dispatcher, store, completion, responder):
        completion.complete.return_value = "[quiz]  "

        await dispatcher.handle(InboundEvent(chat_id=1, text="?"))

        assert responder.actions == []
        # Nothing to record for the assistant
        assert [t.role for t in store.history(1)] == ["user"]

    @pytest.mark.asyncio
    async def test_fallback_reply_is_sent(self, dispatcher, completion, responder):
        completion.complete.return_value = COMPLETION_FALLBACK

        await dispatcher.handle(InboundEvent(chat_id=1, text="hi"))

        assert responder.actions == [("text", 1, COMPLETION_FALLBACK)]

    @pytest.mark.asyncio
    async def test_message_without_content_ignored(self, dispatcher, store, completion, responder):
        await dispatcher.handle(InboundEvent(chat_id=1))
        await dispatcher.handle(InboundEvent(chat_id=1, text="   "))

        assert responder.actions == []
        assert store.history(1) == []
        completion.complete.assert_not_called()


class TestDirectivePrecedence:

    @pytest.mark.asyncio
    async def test_voice_replaces_text(self, dispatcher, store, completion, synthesizer, responder):
        completion.complete.return_value = "[voice] Здравствуйте! Я Анна."

        await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        synthesizer.synthesize.assert_awaited_once_with("Здравствуйте! Я Анна.")
        assert responder.actions == [("voice", 1, b"OggS-voice")]
        assert store.history(1)[-1].content == "Здравствуйте! Я Анна."

    @pytest.mark.asyncio
    async def test_lead_form_wins_over_voice(self, dispatcher, completion, synthesizer, responder):
        completion.complete.return_value = "[voice][openLeadForm] Оставьте номер"

        await dispatcher.handle(InboundEvent(chat_id=1, text="хочу подключиться"))

        synthesizer.synthesize.assert_not_called()
        assert responder.actions == [("contact", 1, "Оставьте номер")]

    @pytest.mark.asyncio
    async def test_lead_form_fallback_text(self, dispatcher, completion, responder):
        completion.complete.return_value = "[OPENLEADFORM]"

        await dispatcher.handle(InboundEvent(chat_id=1, text="да"))

        assert responder.actions == [("contact", 1, LEAD_FORM_FALLBACK)]

    @pytest.mark.asyncio
    async def test_synthesis_failure_is_not_fatal(self, dispatcher, completion, synthesizer, responder):
        completion.complete.return_value = "[voice] Привет"
        synthesizer.synthesize.side_effect = SynthesisError("TTS 502")

        await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        # No voice, no apology either
        assert responder.actions == []

    @pytest.mark.asyncio
    async def test_synthesis_noop_sends_nothing(self, dispatcher, completion, synthesizer, responder):
        completion.complete.return_value = "[voice]"
        synthesizer.synthesize.return_value = None

        await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        assert responder.actions == []

    @pytest.mark.asyncio
    async def test_unusable_scratch_dir_is_not_fatal(self, store, completion, transcriber, responder, tmp_path):
        encoder = OpusEncoder(temp_dir=str(tmp_path / "missing"))
        dispatcher = Dispatcher(store, completion, transcriber, Synthesizer("http://tts", encoder), responder)
        completion.complete.return_value = "[voice] Привет"
        client = make_http_client(make_response(200, content=b"ID3-mp3"))

        with patch("httpx.AsyncClient", return_value=client):
            await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        assert responder.actions == []

    @pytest.mark.asyncio
    async def test_voice_send_failure_is_not_fatal(self, dispatcher, completion, responder):
        responder.send_voice = AsyncMock(side_effect=RuntimeError("telegram down"))
        completion.complete.return_value = "[voice] Привет"

        await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        responder.send_voice.assert_awaited_once_with(1, b"OggS-voice")
        assert responder.actions == []


class TestPromoCode:

    @pytest.mark.asyncio
    async def test_promo_code_short_circuits(self, dispatcher, store, completion, responder):
        await dispatcher.handle(InboundEvent(chat_id=1, text="use code anna50 now"))

        assert responder.actions == [("text", 1, PROMO_CODE_REPLY)]
        assert store.history(1) == []
        completion.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_promo_code_in_voice(self, dispatcher, store, transcriber, completion, responder):
        transcriber.transcribe.return_value = "промокод ANNA50"

        await dispatcher.handle(InboundEvent(chat_id=1, voice=object()))

        assert responder.actions == [("text", 1, PROMO_CODE_REPLY)]
        completion.complete.assert_not_called()


class TestVoiceInput:

    @pytest.mark.asyncio
    async def test_transcribed_text_used_as_content(self, dispatcher, store, transcriber, completion, responder):
        voice = object()
        transcriber.transcribe.return_value = "сколько стоит?"
        completion.complete.return_value = "500 рублей."

        await dispatcher.handle(InboundEvent(chat_id=1, voice=voice))

        transcriber.transcribe.assert_awaited_once_with(voice)
        assert store.history(1)[0].content == "сколько стоит?"
        assert responder.actions == [("text", 1, "500 рублей.")]

    @pytest.mark.asyncio
    async def test_unrecognized_voice(self, dispatcher, store, transcriber, completion, responder):
        transcriber.transcribe.return_value = ""

        await dispatcher.handle(InboundEvent(chat_id=1, voice=object()))

        assert responder.actions == [("text", 1, VOICE_NOT_RECOGNIZED_REPLY)]
        assert store.history(1) == []
        completion.complete.assert_not_called()


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_completion_failure_sends_apology(self, dispatcher, store, completion, responder):
        completion.complete.side_effect = CompletionError("connection refused")

        await dispatcher.handle(InboundEvent(chat_id=1, text="привет"))

        assert responder.actions == [("text", 1, GENERIC_ERROR_REPLY)]
        # User turn is kept
        assert [t.content for t in store.history(1)] == ["привет"]

    @pytest.mark.asyncio
    async def test_next_events_still_handled(self, dispatcher, completion, responder):
        completion.complete.side_effect = [CompletionError("boom"), "ок", "ок 2"]

        await dispatcher.handle(InboundEvent(chat_id=1, text="a"))
        await dispatcher.handle(InboundEvent(chat_id=1, text="b"))
        await dispatcher.handle(InboundEvent(chat_id=2, text="c"))

        assert responder.actions == [
            ("text", 1, GENERIC_ERROR_REPLY),
            ("text", 1, "ок"),
            ("text", 2, "ок 2"),
        ]

    @pytest.mark.asyncio
    async def test_send_failure_reported(self, dispatcher, completion, responder):
        sent = []

        async def flaky_send(chat_id, text):
            if not sent:
                sent.append(text)
                raise RuntimeError("telegram down")
            sent.append(text)

        responder.send_text = flaky_send
        completion.complete.return_value = "ответ"

        await dispatcher.handle(InboundEvent(chat_id=1, text="hi"))

        assert sent == ["ответ", GENERIC_ERROR_REPLY]


class TestPromptCommands:

    @pytest.mark.asyncio
    async def test_edit_prompt_round_trip(self, dispatcher, store, completion, responder):
        await dispatcher.edit_prompt(1)
        await dispatcher.handle(InboundEvent(chat_id=1, text="Be formal"))
        await dispatcher.handle(InboundEvent(chat_id=1, text="Здравствуйте"))

        assert responder.actions[:2] == [("text", 1, PROMPT_EDIT_REQUEST), ("text", 1, PROMPT_UPDATED)]
        # The prompt text itself is not part of the conversation
        assert [t.content for t in store.history(1)][0] == "Здравствуйте"
        _, system_prompt = completion.complete.call_args.args
        assert "Be formal" in system_prompt
        assert SYSTEM_PROMPT_BASE not in system_prompt

    @pytest.mark.asyncio
    async def test_empty_prompt_clears_override(self, dispatcher, store, responder):
        store.set_prompt_override(1, "old")
        await dispatcher.edit_prompt(1)
        await dispatcher.handle(InboundEvent(chat_id=1))

        assert responder.actions[-1] == ("text", 1, PROMPT_EMPTY)
        assert store.get(1).prompt_override is None
        assert store.get(1).awaiting_prompt is False

    @pytest.mark.asyncio
    async def test_voice_prompt(self, dispatcher, store, transcriber, responder):
        transcriber.transcribe.return_value = "Говори на вы"
        await dispatcher.edit_prompt(1)
        await dispatcher.handle(InboundEvent(chat_id=1, voice=object()))

        assert store.get(1).prompt_override == "Говори на вы"
        assert responder.actions[-1] == ("text", 1, PROMPT_UPDATED)

    @pytest.mark.asyncio
    async def test_unrecognized_voice_prompt_keeps_waiting(self, dispatcher, store, transcriber, responder):
        transcriber.transcribe.return_value = ""
        await dispatcher.edit_prompt(1)
        await dispatcher.handle(InboundEvent(chat_id=1, voice=object()))

        assert responder.actions[-1] == ("text", 1, PROMPT_VOICE_EMPTY)
        assert store.get(1).awaiting_prompt is True

    @pytest.mark.asyncio
    async def test_promo_code_as_prompt_is_not_redeemed(self, dispatcher, store, responder):
        await dispatcher.edit_prompt(1)
        await dispatcher.handle(InboundEvent(chat_id=1, text="ANNA50"))

        assert store.get(1).prompt_override == "ANNA50"
        assert responder.actions[-1] == ("text", 1, PROMPT_UPDATED)

    @pytest.mark.asyncio
    async def test_reset_prompt(self, dispatcher, store, responder):
        store.set_prompt_override(1, "custom")
        store.set_awaiting_prompt(1, True)

        await dispatcher.reset_prompt(1)

        assert store.get(1).prompt_override is None
        assert store.get(1).awaiting_prompt is False
        assert responder.actions == [("text", 1, PROMPT_RESET)]

    @pytest.mark.asyncio
    async def test_override_is_per_chat(self, dispatcher, store, completion):
        store.set_prompt_override(1, "Be formal")

        await dispatcher.handle(InboundEvent(chat_id=2, text="hi"))

        _, system_prompt = completion.complete.call_args.args
        assert "Be formal" not in system_prompt


class TestSerialization:

    @pytest.mark.asyncio
    async def test_same_chat_events_do_not_interleave(self, dispatcher, store, completion):
        release = asyncio.Event()
        seen_lengths = []

        async def slow_complete(history, system_prompt):
            seen_lengths.append(len(history))
            if len(seen_lengths) == 1:
                await release.wait()
            return f"reply {len(seen_lengths)}"

        completion.complete = AsyncMock(side_effect=slow_complete)

        first = asyncio.create_task(dispatcher.handle(InboundEvent(chat_id=1, text="one")))
        await asyncio.sleep(0)
        second = asyncio.create_task(dispatcher.handle(InboundEvent(chat_id=1, text="two")))
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        # Second call sees the first exchange complete: user, assistant, user
        assert seen_lengths == [1, 3]
        assert [t.content for t in store.history(1)] == ["one", "reply 1", "two", "reply 2"]

    @pytest.mark.asyncio
    async def test_other_chats_not_blocked(self, dispatcher, completion, responder):
        release = asyncio.Event()

        async def complete(history, system_prompt):
            if history[-1].content == "slow":
                await release.wait()
            return history[-1].content

        completion.complete = AsyncMock(side_effect=complete)

        slow = asyncio.create_task(dispatcher.handle(InboundEvent(chat_id=1, text="slow")))
        await asyncio.sleep(0)
        await asyncio.wait_for(dispatcher.handle(InboundEvent(chat_id=2, text="fast")), timeout=1)

        assert responder.actions == [("text", 2, "fast")]
        release.set()
        await slow
