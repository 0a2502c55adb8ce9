"""Telegram channel adapter."""

import asyncio
import logging
import time
from typing import Optional

from telegram import BotCommand, Bot, InputFile, KeyboardButton, ReplyKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..dispatcher import Dispatcher, InboundEvent
from ..prompts import LEAD_FORM_BUTTON

logger = logging.getLogger("voicerelay.telegram")

VOICE_FILENAME = "voice.ogg"

BOT_COMMANDS = [
    ("setprompt", "📝 Изменить промт"),
    ("resetprompt", "🔄 Сбросить промт"),
]


class _TypingIndicator:
    """Keeps sending a chat action every 4s until the block exits.

    Usage:
        async with _TypingIndicator(bot, chat_id):
            await long_running_work()

    Auto-stops after max_duration seconds even if the wrapped coroutine
    hangs on a slow upstream call.
    """

    def __init__(self, bot: Bot, chat_id: int, action: str = "typing", interval: float = 4.0, max_duration: float = 120.0):
        self._bot = bot
        self._chat_id = chat_id
        self._action = action
        self._interval = interval
        self._max_duration = max_duration
        self._task: Optional[asyncio.Task] = None

    async def _loop(self):
        start = time.monotonic()
        try:
            while time.monotonic() - start <= self._max_duration:
                await self._bot.send_chat_action(self._chat_id, self._action)
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Chat action failed for {self._chat_id}: {e}")

    async def __aenter__(self):
        self._task = asyncio.create_task(self._loop())
        return self

    async def __aexit__(self, *exc):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class TelegramChannel:
    """Telegram transport: feeds updates to the dispatcher and sends its replies."""

    def __init__(self, dispatcher: Dispatcher, bot_token: str):
        self.dispatcher = dispatcher
        self.bot_token = bot_token
        self.app: Optional[Application] = None
        dispatcher.set_responder(self)

    @property
    def bot(self) -> Bot:
        return self.app.bot

    def _register_handlers(self):
        """Register all Telegram handlers on self.app."""
        self.app.add_handler(CommandHandler("setprompt", self._cmd_setprompt))
        self.app.add_handler(CommandHandler("resetprompt", self._cmd_resetprompt))
        # Everything else with text, including /start and unknown commands,
        # goes to the model as ordinary content.
        self.app.add_handler(MessageHandler(filters.TEXT, self._handle_text))
        self.app.add_handler(MessageHandler(filters.VOICE, self._handle_voice))
        self.app.add_handler(MessageHandler(filters.ALL, self._handle_other))
        self.app.add_error_handler(self._handle_error)

    async def start(self):
        """Build the application and start polling."""
        self.app = (
            Application.builder()
            .token(self.bot_token)
            .concurrent_updates(256)
            .build()
        )

        self._register_handlers()

        logger.info("Starting Telegram bot...")
        # Retry initialization (getMe) — transient network timeouts shouldn't kill the bot
        for attempt in range(5):
            try:
                await self.app.initialize()
                break
            except Exception as e:
                if attempt < 4:
                    delay = [2, 5, 10, 15][attempt]
                    logger.warning(f"Telegram init failed (attempt {attempt + 1}/5): {type(e).__name__}: {e}. Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                else:
                    raise
        await self.app.start()
        await self.app.updater.start_polling(
            drop_pending_updates=True,
            allowed_updates=["message"],
        )

        # Command menu (the "/" button in Telegram)
        try:
            await self.app.bot.set_my_commands([BotCommand(name, desc) for name, desc in BOT_COMMANDS])
        except Exception as e:
            logger.warning(f"Failed to register bot commands: {e}")

        logger.info("Telegram bot started (polling).")

    async def stop(self):
        """Stop the Telegram bot."""
        if not self.app:
            return
        if self.app.updater and self.app.updater.running:
            await self.app.updater.stop()
        if self.app.running:
            await self.app.stop()
        await self.app.shutdown()
        logger.info("Telegram bot stopped.")

    # ── Responder ────────────────────────────────────────────

    async def send_text(self, chat_id: int, text: str):
        await self.bot.send_message(chat_id=chat_id, text=text)

    async def send_contact_request(self, chat_id: int, text: str):
        keyboard = ReplyKeyboardMarkup(
            [[KeyboardButton(LEAD_FORM_BUTTON, request_contact=True)]],
            one_time_keyboard=True,
            resize_keyboard=True,
        )
        await self.bot.send_message(chat_id=chat_id, text=text, reply_markup=keyboard)

    async def send_voice(self, chat_id: int, audio: bytes):
        await self.bot.send_voice(chat_id=chat_id, voice=InputFile(audio, filename=VOICE_FILENAME))

    # ── Handlers ─────────────────────────────────────────────

    async def _cmd_setprompt(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not update.effective_chat:
            return
        await self.dispatcher.edit_prompt(update.effective_chat.id)

    async def _cmd_resetprompt(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not update.effective_chat:
            return
        await self.dispatcher.reset_prompt(update.effective_chat.id)

    async def _handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle incoming text messages."""
        msg = update.message
        if not msg or not msg.text:
            return
        logger.info(f"[{msg.chat.id}] text: {msg.text[:100]}")
        async with _TypingIndicator(context.bot, msg.chat.id):
            await self.dispatcher.handle(InboundEvent(chat_id=msg.chat.id, text=msg.text))

    async def _handle_voice(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle voice messages — transcribed by the dispatcher."""
        msg = update.message
        if not msg or not msg.voice:
            return
        logger.info(f"[{msg.chat.id}] voice message ({msg.voice.duration}s)")
        async with _TypingIndicator(context.bot, msg.chat.id):
            await self.dispatcher.handle(InboundEvent(chat_id=msg.chat.id, voice=msg.voice))

    async def _handle_other(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Stickers, photos, contacts, ... — carry no text for the pipeline."""
        msg = update.message
        if not msg:
            return
        if msg.contact:
            logger.info(f"[{msg.chat.id}] contact shared")
        await self.dispatcher.handle(InboundEvent(chat_id=msg.chat.id))

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors in update processing."""
        error = context.error
        if update:
            logger.error(f"Telegram error processing update {type(update).__name__}: {type(error).__name__}: {error}", exc_info=error)
        else:
            logger.error(f"Telegram error (no update): {type(error).__name__}: {error}", exc_info=error)
        if self.app and self.app.updater and not self.app.updater.running:
            logger.critical("POLLING STOPPED after error — bot will not receive new messages!")
