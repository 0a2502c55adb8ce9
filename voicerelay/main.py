"""voicerelay — Main entry point."""

import asyncio
import logging
import sys

from .communication.telegram import TelegramChannel
from .config import RelaySettings, load_settings
from .dispatcher import Dispatcher
from .llm.openai import CompletionClient
from .server import HealthServer
from .speech import OpusEncoder, Synthesizer, Transcriber
from .store import ConversationStore

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("voicerelay")


def setup_logging(debug: bool = False):
    logging.basicConfig(level=logging.INFO, format=_log_format)
    # httpx logs every request URL at INFO, which includes the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if debug:
        logger.setLevel(logging.DEBUG)


def _handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict):
    """Log uncaught task errors instead of letting them take the process down."""
    error = context.get("exception")
    message = context.get("message", "Unhandled error")
    if error:
        logger.error(f"UNHANDLED: {message}: {type(error).__name__}: {error}", exc_info=error)
    else:
        logger.error(f"UNHANDLED: {message}")


def build_dispatcher(settings: RelaySettings, store: ConversationStore) -> Dispatcher:
    """Wire the adapters into a dispatcher (responder attached later by the channel)."""
    completion = CompletionClient(
        api_key=settings.openai_api_key,
        model=settings.chat_model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        base_url=settings.openai_base_url,
    )
    transcriber = Transcriber(
        api_key=settings.openai_api_key,
        model=settings.stt_model,
        endpoint=f"{settings.openai_base_url.rstrip('/')}/audio/transcriptions",
        temp_dir=settings.temp_dir,
    )
    synthesizer = Synthesizer(
        proxy_url=settings.tts_proxy_url,
        encoder=OpusEncoder(ffmpeg_path=settings.ffmpeg_path, temp_dir=settings.temp_dir),
    )
    return Dispatcher(store, completion, transcriber, synthesizer)


async def run(settings: RelaySettings = None) -> int:
    """Main run loop. Returns the process exit code."""
    settings = settings or load_settings()

    missing = settings.missing_secrets()
    if missing:
        logger.critical(f"❌ Missing required settings: {', '.join(missing)}")
        return 1

    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)

    store = ConversationStore()
    dispatcher = build_dispatcher(settings, store)
    telegram = TelegramChannel(dispatcher, settings.telegram_bot_token)
    server = HealthServer(store, host=settings.host, port=settings.port)

    try:
        await server.start()
        await telegram.start()
        logger.info("✅ Telegram bot Anna is running. Press Ctrl+C to stop.")
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        return 1
    finally:
        await telegram.stop()
        await server.stop()
    return 0


def main():
    """Entry point."""
    settings = load_settings()
    setup_logging(settings.debug)
    try:
        code = asyncio.run(run(settings))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
