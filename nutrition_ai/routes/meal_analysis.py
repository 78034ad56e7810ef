from fastapi import APIRouter, File, UploadFile

from ..models.meal_analysis_schema import (
    MealImageUrlRequest,
    MealTextRequest,
    VisionAnalysisResult,
)
from ..services.vision import VisionService

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/analyze_meal", response_model=VisionAnalysisResult)
async def analyze_meal(file: UploadFile = File(...)) -> VisionAnalysisResult:
    image_bytes = await file.read()
    return await VisionService.analyze_meal_image(image_bytes, file.content_type or "")


@router.post("/analyze_meal_url", response_model=VisionAnalysisResult)
async def analyze_meal_url(payload: MealImageUrlRequest) -> VisionAnalysisResult:
    return await VisionService.analyze_meal_image_url(payload.imageUrl)


@router.post("/analyze_meal_text", response_model=VisionAnalysisResult)
async def analyze_meal_text(payload: MealTextRequest) -> VisionAnalysisResult:
    return await VisionService.analyze_text_description(payload.description)
