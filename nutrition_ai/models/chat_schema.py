from typing import List, Optional

from pydantic import BaseModel, Field

from .meal_analysis_schema import FoodCategory, NutritionData


class ChatMessage(BaseModel):
    role: str
    content: str
    timestamp: Optional[float] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="User message for the nutrition assistant")
    conversationHistory: Optional[List[ChatMessage]] = Field(
        default=None, description="Previous turns, oldest first"
    )


class ChatMealFood(BaseModel):
    name: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0, le=9999.99)
    unit: str = Field(..., max_length=16)
    nutrition: NutritionData
    category: FoodCategory


class ChatMealPayload(BaseModel):
    foods: List[ChatMealFood] = Field(..., min_length=1)
    totalNutrition: NutritionData
    mealType: str


class ChatResponse(BaseModel):
    message: str
    shouldRegisterMeal: bool
    mealData: Optional[ChatMealPayload] = None
