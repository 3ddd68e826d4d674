# snapcaption_backend/services/ai_service.py

import base64
from typing import Any, Dict, Optional

from groq import AsyncGroq
from ratelimit import limits, sleep_and_retry

from config import (
    CALLS_PER_MINUTE,
    PERIOD,
    CAPTION_MODEL,
    GROQ_API_KEY_CAPTION,
    logger,
)
from services.caption_normalizer import normalize_caption


class CaptionGenerationError(Exception):
    """Raised when the caption provider could not produce a caption."""


# ============================================================
# 🔵 1. STYLE + LANGUAGE SETTINGS
# ============================================================

DEFAULT_VIBE = "Fun"
DEFAULT_LANGUAGE = "en"
MAX_EXTRA_PROMPT_CHARS = 180

VIBE_STYLES = {
    "Fun": "Playful, upbeat, light tone. Include 1-2 fitting emojis.",
    "Professional": "Concise, neutral, authoritative tone. Avoid slang. 0-1 tasteful emoji allowed.",
    "Dramatic": "Cinematic, evocative, high-impact tone. 1-2 powerful emojis if fitting.",
    "Minimal": "Ultra concise (max 8 words) and clean. Prefer NO emojis unless essential.",
    "Adventurous": "Energetic, explorative, outdoorsy tone with subtle excitement. 1-2 emojis.",
    "Wholesome": "Warm, positive, heartwarming tone. 1-2 gentle emojis.",
}

LANGUAGE_CONFIGS = {
    "en": {"name": "English", "instruction": "Generate the caption in English."},
    "es": {"name": "Spanish", "instruction": "Generate the caption in Spanish (Español)."},
    "fr": {"name": "French", "instruction": "Generate the caption in French (Français)."},
    "de": {"name": "German", "instruction": "Generate the caption in German (Deutsch)."},
    "it": {"name": "Italian", "instruction": "Generate the caption in Italian (Italiano)."},
    "pt": {"name": "Portuguese", "instruction": "Generate the caption in Portuguese (Português)."},
    "ru": {"name": "Russian", "instruction": "Generate the caption in Russian (Русский)."},
    "ja": {"name": "Japanese", "instruction": "Generate the caption in Japanese (日本語)."},
    "ko": {"name": "Korean", "instruction": "Generate the caption in Korean (한국어)."},
    "zh": {"name": "Chinese", "instruction": "Generate the caption in Chinese (中文)."},
    "ar": {
        "name": "Arabic",
        "instruction": "Generate the caption in Arabic (العربية). Use appropriate RTL text formatting.",
    },
    "hi": {"name": "Hindi", "instruction": "Generate the caption in Hindi (हिन्दी)."},
}


def build_system_instruction(style_descriptor: str, language: str = DEFAULT_LANGUAGE) -> str:
    lang_config = LANGUAGE_CONFIGS.get(language, LANGUAGE_CONFIGS[DEFAULT_LANGUAGE])

    return f"""You craft a SINGLE social-media-ready caption for an image.
Style Guidance: {style_descriptor}
Language: {lang_config["instruction"]}
Hard Rules:
  - Output ONLY the caption text (no preface, no quotes, no numbering).
  - Base caption body BEFORE hashtags must be relevant and natural language.
  - Append 3 to 4 highly relevant, diverse hashtags at the END separated by single spaces.
  - Hashtags: short (<=18 chars), no repetition, no generic spam (#photo, #insta, #love) unless truly necessary.
  - For non-English languages, hashtags can be in English or the target language as appropriate.
  - Max 140 characters overall (unless Minimal vibe: max 100 characters to accommodate required hashtags).
  - Never invent personal or private details (names, locations) unless explicitly provided in extra context.
  - Avoid repeating words unless for deliberate stylistic effect.
  - No offensive, unsafe, or disallowed content.
  - Respect cultural context and appropriateness for the target language.
Formatting:
  - No surrounding quotation marks.
  - No trailing spaces.
  - Emojis (if any) should feel organic, not forced.
  - Ensure hashtags come last with a space before the first hashtag.
  - For RTL languages like Arabic, maintain proper text direction."""


def sanitize_extra_prompt(extra_prompt: Optional[str]) -> str:
    """Collapses whitespace and caps user context at 180 characters."""
    context = " ".join((extra_prompt or "").split())
    if len(context) > MAX_EXTRA_PROMPT_CHARS:
        context = context[:MAX_EXTRA_PROMPT_CHARS] + "…"
    return context


def image_to_data_url(image_bytes: bytes, content_type: str = "image/jpeg") -> str:
    return f"data:{content_type};base64," + base64.b64encode(image_bytes).decode()


# ============================================================
# 🔵 2. DEDICATED CAPTION CLIENT + RATE LIMIT WRAPPER
# ============================================================

def get_caption_client() -> AsyncGroq:
    if not GROQ_API_KEY_CAPTION:
        logger.error("GROQ_API_KEY_CAPTION missing, caption client cannot authenticate")
    return AsyncGroq(api_key=GROQ_API_KEY_CAPTION)


@sleep_and_retry
@limits(calls=CALLS_PER_MINUTE, period=PERIOD)
async def rate_limited_caption_call(client: AsyncGroq, **kwargs) -> Any:
    return await client.chat.completions.create(**kwargs)


# ============================================================
# 🔵 3. CAPTION GENERATION
# ============================================================

async def generate_caption(
    image_bytes: bytes,
    vibe: str = DEFAULT_VIBE,
    extra_prompt: str = "",
    language: str = DEFAULT_LANGUAGE,
    content_type: str = "image/jpeg",
    client: Optional[AsyncGroq] = None,
) -> str:
    """
    Generates a single normalized caption for an image.

    Unknown vibes fall back to Fun and unknown languages to English.
    Provider failures surface as CaptionGenerationError.
    """
    chosen_vibe = vibe if vibe in VIBE_STYLES else DEFAULT_VIBE
    chosen_language = language if language in LANGUAGE_CONFIGS else DEFAULT_LANGUAGE
    context = sanitize_extra_prompt(extra_prompt)

    messages: list[Dict[str, Any]] = [
        {
            "role": "system",
            "content": build_system_instruction(VIBE_STYLES[chosen_vibe], chosen_language),
        },
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": f"Extra context: {context}" if context else "No extra context provided.",
                },
                {
                    "type": "image_url",
                    "image_url": {"url": image_to_data_url(image_bytes, content_type)},
                },
            ],
        },
    ]

    try:
        client = client or get_caption_client()
        response = await rate_limited_caption_call(
            client,
            model=CAPTION_MODEL,
            messages=messages,
            temperature=0.7,
            top_p=0.95,
            max_completion_tokens=200,
        )
        raw = response.choices[0].message.content or ""
    except Exception as e:
        logger.error(f"AI caption generation failed: {e}")
        raise CaptionGenerationError("Failed to generate caption") from e

    return normalize_caption(raw, chosen_vibe)
