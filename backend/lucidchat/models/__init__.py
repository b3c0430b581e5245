"""Database models package."""

from lucidchat.models.user import User
from lucidchat.models.character import Character
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.achievement import Achievement

__all__ = ["User", "Character", "ChatRoom", "ChatLog", "Achievement"]
