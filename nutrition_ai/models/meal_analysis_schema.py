from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, model_serializer

FoodCategory = Literal["protein", "carb", "vegetable", "fruit", "dairy", "fat", "mixed"]


class MealImageUrlRequest(BaseModel):
    imageUrl: str


class MealTextRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)


class NutritionData(BaseModel):
    calories: int = Field(..., ge=0, le=999_999)
    protein: float = Field(..., ge=0, le=999_999)
    carbs: float = Field(..., ge=0, le=999_999)
    fat: float = Field(..., ge=0, le=999_999)
    fiber: Optional[float] = Field(
        default=None,
        gt=0,
        le=999_999,
        description="Grams of fiber; omitted when the model did not report it",
    )

    @model_serializer(mode="wrap")
    def omit_unknown_fiber(self, handler) -> dict[str, Any]:
        data = handler(self)
        if data.get("fiber") is None:
            data.pop("fiber", None)
        return data


class Portion(BaseModel):
    amount: float = Field(..., ge=0, le=9999.99)
    unit: str = Field(..., max_length=16)


class DetectedFood(BaseModel):
    name: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0, le=1)
    portion: Portion
    nutrition: NutritionData
    category: FoodCategory
    detected_ingredients: List[str] = Field(default_factory=list)
    portion_display: str = ""
    portion_grams: float = Field(default=0, ge=0, le=9999.99)


class MealAnalysisSummary(BaseModel):
    health_score: float = Field(..., ge=0, le=100)
    health_feedback: str = ""
    dominant_macro: str = ""


class VisionAnalysisResult(BaseModel):
    is_food: Literal[True] = True
    error: None = None
    reasoning: str = ""
    foods: List[DetectedFood]
    meal_analysis: MealAnalysisSummary
    totalNutrition: NutritionData
