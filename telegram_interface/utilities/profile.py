"""Telegram user -> UserProfile"""

from typing import Optional

from aiogram.types import User

from boardview.models import UserProfile


def profile_from_user(user: Optional[User]) -> Optional[UserProfile]:
    if user is None:
        return None
    return UserProfile(
        first_name=user.first_name or "",
        last_name=user.last_name or "",
        username=user.username or "",
    )
