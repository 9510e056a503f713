# -*- coding: utf-8 -*-
"""
Message texts for customer notifications.

Language resolution:
- If language not in LANGUAGES → use DEFAULT_LANGUAGE (en)
- If key missing in requested language → fallback to English
- If key missing in all languages → return key (safe fallback, never crash)
"""

import logging

from . import en, es

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

LANGUAGES = {
    "en": en.LANG,
    "es": es.LANG,
}


def _render(text: str, kwargs: dict) -> str:
    if not kwargs:
        return text
    try:
        return text.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        logger.error("I18N format failed for text=%r", text)
        return text


def get_text(language: str, key: str, **kwargs) -> str:
    """
    Get localized text for key in given language.

    Args:
        language: Language code (en, es)
        key: Dot-separated key (e.g. queue.any_provider_almost_up)
        **kwargs: Format placeholders (e.g. shop_name="Fade Lab" for {shop_name})

    Returns:
        Localized string, optionally formatted. Never raises.
    """
    lang_dict = LANGUAGES.get(language, LANGUAGES[DEFAULT_LANGUAGE])
    text = lang_dict.get(key)
    if text is not None:
        return _render(text, kwargs)

    en_dict = LANGUAGES.get("en", {})
    if key in en_dict:
        logger.warning("I18N fallback to EN for key=%s, lang=%s", key, language)
        return _render(en_dict[key], kwargs)

    logger.error("I18N missing key in all languages: %s", key)
    return key


__all__ = ["get_text", "LANGUAGES", "DEFAULT_LANGUAGE"]
