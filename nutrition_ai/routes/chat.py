from fastapi import APIRouter

from ..models.chat_schema import ChatRequest, ChatResponse
from ..services.vision import VisionService

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(payload: ChatRequest) -> ChatResponse:
    return await VisionService.chat_nutrition(payload.message, payload.conversationHistory)
