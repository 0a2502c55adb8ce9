"""Persona prompt and fixed reply texts.

The texts are part of the bot's observable behaviour and are kept verbatim.
"""

import re
from typing import Optional

SYSTEM_PROMPT_BASE = """
Ты — "Анна", менеджер по продажам и консультант наших продуктов. Общение в Telegram.

Стиль: коротко (1–4 предложения), по-человечески, без эмодзи.
"""

SYSTEM_PROMPT_RULES = """
Разрешены теги: [openLeadForm], [voice], [quiz], [showOptions].

Правила голоса:
- Первое приветствие всегда содержит [voice].
- [voice] ставь, когда лучше сказать голосом: приветствие, короткие подтверждения, сочувствие, живое объяснение.
- Для списков, цен и длинных инструкций используй текст без [voice].
- Если [voice] есть, бот озвучивает текст сам.
"""

# Promo code
PROMO_CODE_PATTERN = re.compile(r"ANNA50", re.IGNORECASE)
PROMO_CODE_REPLY = (
    "Промокод активирован: −50% на подключение, абонентка без изменений. "
    "Передала в отдел продаж."
)

# Pipeline replies
GENERIC_ERROR_REPLY = "Произошла ошибка. Попробуй ещё раз."
VOICE_NOT_RECOGNIZED_REPLY = "Не получилось распознать голос. Напиши текстом."
COMPLETION_FALLBACK = "Ошибка GPT."
LEAD_FORM_FALLBACK = "Оставь заявку прямо здесь:"
LEAD_FORM_BUTTON = "📱 Поделиться контактом"

# /setprompt and /resetprompt
PROMPT_EDIT_REQUEST = "Введи новый текст для промта (часть про стиль/поведение):"
PROMPT_UPDATED = "✅ Промт обновлён!"
PROMPT_EMPTY = "❌ Пустой текст. Попробуй ещё раз."
PROMPT_VOICE_EMPTY = "❌ Не получилось распознать голос. Отправь текст промта ещё раз."
PROMPT_RESET = "🔄 Промт сброшен до стандартного."


def build_system_prompt(override: Optional[str] = None) -> str:
    """Compose the system prompt sent with every completion request.

    The custom override replaces only the persona part; the tag rules are
    always appended.
    """
    return (override or SYSTEM_PROMPT_BASE) + "\n\n" + SYSTEM_PROMPT_RULES


def is_promo_code(text: str) -> bool:
    return bool(PROMO_CODE_PATTERN.search(text))
