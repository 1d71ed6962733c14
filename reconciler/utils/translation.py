"""
Translation of gateway-provided multi-language strings
"""

import logging
from typing import Dict, Optional

from reconciler.core.config import settings

logger = logging.getLogger(__name__)


def clean_language_code(language: Optional[str]) -> Optional[str]:
    """
    Normalize a language code to the xx-XX form.
    
    "de_de" -> "de-DE", "fr" -> "fr"
    """
    if not language:
        return None
    parts = language.replace("_", "-").split("-")
    if len(parts) >= 2 and parts[1]:
        return f"{parts[0].lower()}-{parts[1].upper()}"
    return parts[0].lower()


def translate(strings: Optional[Dict[str, str]], language: Optional[str] = None) -> Optional[str]:
    """
    Pick the best entry of a language -> text mapping.
    
    Order: exact language, any entry sharing the primary language,
    the fallback language, then the first entry.
    """
    if not strings:
        return None
    
    language = clean_language_code(language)
    if language:
        if language in strings:
            return strings[language]
        primary = language.split("-")[0]
        for code, text in strings.items():
            if code.split("-")[0].lower() == primary:
                return text
    
    fallback = settings.FALLBACK_LANGUAGE
    if fallback in strings:
        return strings[fallback]
    
    logger.error(f"Could not find translation for {language!r} in {list(strings)}")
    return next(iter(strings.values()))
