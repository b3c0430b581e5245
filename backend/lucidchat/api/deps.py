"""Service wiring shared by the routes.

The lifespan hook builds one ``Services`` container per app and stores it on
``app.state``; tests override ``get_services`` with stubbed collaborators.
"""

from dataclasses import dataclass

from fastapi import Request

from lucidchat.services.chat_service import ChatService
from lucidchat.services.ending_service import EndingService
from lucidchat.services.memory_service import MemoryService
from lucidchat.services.room_service import RoomService


@dataclass
class Services:
    rooms: RoomService
    chat: ChatService
    endings: EndingService
    memory: MemoryService


def get_services(request: Request) -> Services:
    return request.app.state.services
