"""Memory endpoints - inspect what the character remembers about a user."""

from fastapi import APIRouter, Depends

from lucidchat.api.deps import Services, get_services
from lucidchat.schemas.chat import MemoryResult

router = APIRouter()


@router.get("/{user_id}", response_model=MemoryResult)
async def retrieve_memory(user_id: int, query: str, services: Services = Depends(get_services)):
    memory = await services.memory.retrieve(user_id, query)
    return MemoryResult(user_id=user_id, query=query, memory=memory)
