from __future__ import annotations

import logging
import sqlite3
import threading

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collate.core.config import settings

logger = logging.getLogger(__name__)

NORMALIZE_FUNCTION = "normalize"
_REGISTERED_INFO_KEY = "collate_normalize_registered"
_REGISTER_LOCK = threading.Lock()

_REPLACEMENTS = {
    "á": "a", "ä": "a", "à": "a", "â": "a", "ã": "a", "å": "a", "æ": "ae",
    "č": "c", "ć": "c", "ç": "c",
    "ď": "d", "đ": "d",
    "é": "e", "ë": "e", "è": "e", "ê": "e", "ě": "e",
    "í": "i", "ï": "i", "ì": "i", "î": "i",
    "ľ": "l", "ĺ": "l", "ł": "l",
    "ň": "n", "ń": "n", "ñ": "n",
    "ó": "o", "ö": "o", "ò": "o", "ô": "o", "õ": "o", "ø": "o", "œ": "oe",
    "ř": "r", "ŕ": "r",
    "š": "s", "ś": "s", "ş": "s", "ș": "s",
    "ť": "t", "ț": "t",
    "ú": "u", "ü": "u", "ù": "u", "û": "u", "ů": "u",
    "ý": "y", "ÿ": "y",
    "ž": "z", "ź": "z", "ż": "z",
}
_TRANSLATION = str.maketrans(_REPLACEMENTS)


def normalize_for_search(value: str | None) -> str | None:
    """Lower-case ``value`` and fold accented Latin letters to their base letters.

    ``None`` is passed through so the function can be used directly as a SQL
    function over nullable columns.
    """
    if value is None:
        return None
    return str(value).lower().translate(_TRANSLATION)


def ensure_normalize_registered(db: Session) -> bool:
    """Make ``normalize(text)`` callable from SQL on the session's connection.

    Registration is done once per pooled DBAPI connection. Returns ``False``
    when the backend cannot host the function; callers then fall back to plain
    case-insensitive matching.
    """
    if not settings.COLLATE_SEARCH_NORMALIZE:
        return False
    try:
        connection = db.connection()
    except SQLAlchemyError:
        logger.warning("normalize_registration_no_connection", exc_info=True)
        return False
    if connection.dialect.name != "sqlite":
        return False

    pooled = connection.connection
    registered = pooled.info.get(_REGISTERED_INFO_KEY)
    if registered is not None:
        return registered

    with _REGISTER_LOCK:
        registered = pooled.info.get(_REGISTERED_INFO_KEY)
        if registered is not None:
            return registered
        try:
            pooled.dbapi_connection.create_function(
                NORMALIZE_FUNCTION, 1, normalize_for_search, deterministic=True
            )
            registered = True
        except (sqlite3.Error, AttributeError, TypeError) as exc:
            logger.warning("Failed to register normalize function: %s", exc)
            registered = False
        pooled.info[_REGISTERED_INFO_KEY] = registered
    return registered
