"""
User settings stored on the ``users`` table: preferred language and theme.
"""
import logging
from typing import Optional

from .remote import RemoteStore, NoRowsError
from .schema import UserProfile, ValidationError

logger = logging.getLogger(__name__)

LANGUAGES = ("en", "ar")
THEMES = ("light", "dark", "system")


def get_profile(remote: RemoteStore, user_id: str) -> Optional[UserProfile]:
    """The user's settings row, or None when it was never created."""
    try:
        row = remote.select_one("users", {"id": user_id})
    except NoRowsError:
        return None
    return UserProfile.from_dict(row)


def update_profile(remote: RemoteStore, user_id: str, language: Optional[str] = None,
                   theme: Optional[str] = None, email: str = "") -> UserProfile:
    """
    Change language and/or theme. A user without a settings row gets one
    created with the given values and defaults for the rest.
    """
    values = {}
    if language is not None:
        language = language.strip().lower()
        if language not in LANGUAGES:
            raise ValidationError(f"Invalid language: '{language}'. Allowed: {', '.join(LANGUAGES)}")
        values["preferred_language"] = language
    if theme is not None:
        theme = theme.strip().lower()
        if theme not in THEMES:
            raise ValidationError(f"Invalid theme: '{theme}'. Allowed: {', '.join(THEMES)}")
        values["theme"] = theme

    current = get_profile(remote, user_id)
    if current is None:
        row = {"id": user_id, "email": email, **values}
        created = remote.insert("users", row)[0]
        logger.info(f"Created settings for user {user_id}")
        return UserProfile.from_dict(created)
    if not values:
        return current
    return UserProfile.from_dict(remote.update("users", user_id, values))
