"""
Language normalisation and the string table used on rendered documents.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "tr")

# Values sent by older front-ends
LANGUAGE_ALIASES = {
    "english": "en",
    "turkish": "tr",
}

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "invoice": "INVOICE",
        "proforma-invoice": "PROFORMA INVOICE",
        "packing-list": "PACKING LIST",
        "credit-note": "CREDIT NOTE",
        "debit-note": "DEBIT NOTE",
        "order-confirmation": "ORDER CONFIRMATION",
        "siparis": "PURCHASE ORDER",
        "price-offer": "PRICE OFFER",
        "technical-sheet": "FABRIC TECHNICAL SHEET",
        "items": "ITEMS",
        "generatedAt": "Generated at",
        "page": "Page",
    },
    "tr": {
        "invoice": "FATURA",
        "proforma-invoice": "PROFORMA FATURA",
        "packing-list": "ÇEKİ LİSTESİ",
        "credit-note": "ALACAK DEKONTU",
        "debit-note": "BORÇ DEKONTU",
        "order-confirmation": "SİPARİŞ ONAYI",
        "siparis": "SİPARİŞ",
        "price-offer": "FİYAT TEKLİFİ",
        "technical-sheet": "KUMAŞ TEKNİK FÖYÜ",
        "items": "KALEMLER",
        "generatedAt": "Oluşturulma",
        "page": "Sayfa",
    },
}


def is_valid_language(language: Optional[str]) -> bool:
    return language in SUPPORTED_LANGUAGES


def normalize_language(language: Optional[str]) -> str:
    """
    Map a client-supplied language value onto a supported two-letter code.

    ``"english"``/``"turkish"`` are accepted as aliases. Missing values and
    unsupported codes fall back to English with a warning.
    """
    if not language:
        return DEFAULT_LANGUAGE
    candidate = LANGUAGE_ALIASES.get(language.strip().lower(), language.strip().lower())
    if not is_valid_language(candidate):
        logger.warning("Invalid language: %s. Using English as fallback.", language)
        return DEFAULT_LANGUAGE
    return candidate


def get_text(key: str, language: str = DEFAULT_LANGUAGE) -> str:
    """Look up ``key`` for ``language``, falling back to English and then to the key itself."""
    if not is_valid_language(language):
        logger.warning("Invalid language code: %s. Falling back to '%s'", language, DEFAULT_LANGUAGE)
        language = DEFAULT_LANGUAGE

    table = TRANSLATIONS[language]
    if key in table:
        return table[key]

    logger.warning("Translation key '%s' not found for language '%s'. Falling back to English.", key, language)
    return TRANSLATIONS[DEFAULT_LANGUAGE].get(key, key)
