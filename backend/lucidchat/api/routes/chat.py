"""Chat room endpoints - rooms, turns, events and endings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lucidchat.api.deps import Services, get_services
from lucidchat.db.database import get_db
from lucidchat.schemas.chat import (
    ChatHistory,
    ChatLogOut,
    CreateRoomRequest,
    RoomInfo,
    SendMessageRequest,
    SystemEventRequest,
    TurnResponse,
)
from lucidchat.schemas.ending import EndingRequest, EndingResponse
from lucidchat.services.chat_service import TurnResult
from lucidchat.services.room_service import load_room

router = APIRouter()


def _turn_to_response(result: TurnResult) -> TurnResponse:
    return TurnResponse(
        reply=result.reply,
        emotion=result.emotion,
        affection_score=result.affection_score,
        relation_tier=result.relation_tier,
        energy=result.energy,
    )


@router.post("/rooms", response_model=RoomInfo)
async def open_room(
    data: CreateRoomRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Open the user's room with a character (returns the existing one if any)."""
    room, _ = await services.rooms.open_room(db, data.user_id, data.character_id, data.mode)
    await db.commit()
    return RoomInfo.from_room(await load_room(db, room.id))


@router.get("/rooms/{room_id}", response_model=RoomInfo)
async def get_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await services.rooms.get_room_info(db, room_id)


@router.get("/rooms/{room_id}/history", response_model=ChatHistory)
async def get_history(
    room_id: int,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Get recent chat history for a room, oldest first."""
    logs = await services.rooms.history(db, room_id, limit)
    return ChatHistory(room_id=room_id, messages=[ChatLogOut.model_validate(log) for log in logs])


@router.post("/rooms/{room_id}/messages", response_model=TurnResponse)
async def send_message(
    room_id: int,
    data: SendMessageRequest,
    services: Services = Depends(get_services),
):
    result = await services.chat.process_turn(room_id, data.content)
    return _turn_to_response(result)


@router.post("/rooms/{room_id}/events", response_model=TurnResponse)
async def send_event(
    room_id: int,
    data: SystemEventRequest,
    services: Services = Depends(get_services),
):
    """Narrate an event into the room and get the character's reaction."""
    result = await services.chat.process_system_event(room_id, data.detail)
    return _turn_to_response(result)


@router.post("/rooms/{room_id}/ending", response_model=EndingResponse)
async def trigger_ending(
    room_id: int,
    data: EndingRequest,
    services: Services = Depends(get_services),
):
    return await services.endings.generate_ending(room_id, data.ending_type)


@router.delete("/rooms/{room_id}", status_code=204)
async def delete_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await services.rooms.delete_room(db, room_id)
