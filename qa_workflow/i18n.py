"""
Message lookup for user-visible strings.

Keys are the English source strings; a missing translation falls back to the key.
"""
from typing import Dict, Optional

from qa_workflow.config import settings

MESSAGES: Dict[str, Dict[str, str]] = {
    "es": {
        "{attribute} cannot be blank.": "{attribute} no puede estar vacío.",
        "{attribute} is invalid.": "{attribute} no es válido.",
        "{attribute} is not translated into {language}.": "{attribute} no está traducido a {language}.",
        "Reviewing not marked as allowed": "La revisión no está marcada como permitida",
        "Publishing not marked as allowed": "La publicación no está marcada como permitida",
        "Failed to save {record}: {details}": "No se pudo guardar {record}: {details}",
        "Item is not publishable": "El elemento no se puede publicar",
        "Item is not published": "El elemento no está publicado",
        "Article": "Artículo",
        "Text block": "Bloque de texto",
        "Attachment": "Adjunto",
    },
    "sv": {
        "{attribute} cannot be blank.": "{attribute} får inte vara tomt.",
        "{attribute} is invalid.": "{attribute} är ogiltigt.",
        "{attribute} is not translated into {language}.": "{attribute} är inte översatt till {language}.",
        "Reviewing not marked as allowed": "Granskning är inte markerad som tillåten",
        "Publishing not marked as allowed": "Publicering är inte markerad som tillåten",
        "Failed to save {record}: {details}": "Kunde inte spara {record}: {details}",
        "Item is not publishable": "Objektet kan inte publiceras",
        "Item is not published": "Objektet är inte publicerat",
        "Article": "Artikel",
        "Text block": "Textblock",
        "Attachment": "Bilaga",
    },
}


def translate(key: str, locale: Optional[str] = None, **params) -> str:
    """Translate a message key into `locale` and interpolate `params`."""
    catalog = MESSAGES.get(locale or settings.locale, {})
    message = catalog.get(key, key)
    if params:
        message = message.format(**params)
    return message
