import asyncio
import hashlib
import json
import logging
import re
from collections import OrderedDict
from typing import Any, List, Optional

import google.generativeai as genai  # type: ignore[import-untyped]
import httpx

from ..errors import (
    INVALID_IMAGE,
    LLM_ANALYSIS_FAILED,
    LLM_CHAT_FAILED,
    LLM_NOT_CONFIGURED,
    LLM_RESPONSE_INVALID,
    ApiError,
)
from ..models.chat_schema import ChatMessage, ChatResponse
from ..models.meal_analysis_schema import VisionAnalysisResult
from ..settings import settings
from .coercion import dig, to_string_or_empty
from .llm_sanitizers import sanitize_chat_meal_data, sanitize_vision_analysis_result

logger = logging.getLogger(__name__)

VISION_SYSTEM_PROMPT = """
You are an expert nutritionist specialised in computer vision.
Your goal is to extract precise nutrition data from a meal and answer in strict JSON.

Reasoning steps (internal):
1. Check whether there is food at all. If there is none, stop and report it.
2. Identify every individual component (not just "salad" but "lettuce", "tomato", "dressing", "chicken").
3. Estimate the volume against common references (cups, fists, plate size).
4. Assign the right category.
5. Compute macros from your internal knowledge and the reference table.

Rules:
- Output ONLY the JSON object. No markdown fences, no greetings.
- Text values (names, feedback) in Spanish. JSON keys in English.
- If the image is blurry, dark, or not food, set "is_food" to false and explain in "error".
- The sum of the items should roughly match the meal.

Reference per 100 g:
- White rice: 130 kcal | Chicken breast: 165 kcal | Avocado: 160 kcal
- Egg (unit): 70 kcal | Wholegrain bread (slice): 70 kcal | Olive oil (tablespoon): 120 kcal

Return:
{
  "is_food": <true|false>,
  "error": "<friendly message when is_food is false, otherwise null>",
  "reasoning": "<short explanation of how foods and sizes were identified>",
  "foods": [
    {
      "name": "<food name>",
      "detected_ingredients": ["<visible ingredient>"],
      "portion_display": "<e.g. 1 cup, 150g>",
      "portion_grams": <grams>,
      "nutrition": {"calories": <kcal>, "protein": <g>, "carbs": <g>, "fat": <g>, "fiber": <g>},
      "category": "protein" | "carb" | "vegetable" | "fruit" | "dairy" | "fat" | "mixed",
      "confidence": <0-1>
    }
  ],
  "meal_analysis": {
    "health_score": <0-100>,
    "health_feedback": "<short advice>",
    "dominant_macro": "<protein|carbs|fat>"
  }
}
""".strip()

CHAT_SYSTEM_PROMPT = """
You are a friendly, expert nutrition assistant.
- Answer questions about nutrition, diets and health.
- Give personalised eating advice.
- Help interpret nutrition information.
Reply in the user's language.

If, and only if, the user clearly says they ate a specific meal, also describe it in "mealData".
Return ONLY JSON:
{
  "message": "<your answer>",
  "mealData": {
    "foods": [
      {
        "name": "<food>",
        "amount": <number>,
        "unit": "<g|ml|cup|slice|unit>",
        "nutrition": {"calories": <kcal>, "protein": <g>, "carbs": <g>, "fat": <g>, "fiber": <g>},
        "category": "protein" | "carb" | "vegetable" | "fruit" | "dairy" | "fat" | "mixed"
      }
    ],
    "totalNutrition": {"calories": <kcal>, "protein": <g>, "carbs": <g>, "fat": <g>, "fiber": <g>},
    "mealType": "breakfast" | "lunch" | "dinner" | "snack"
  }
}
Omit "mealData" when the user did not report a meal.
""".strip()

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class VisionService:
    _cache: "OrderedDict[str, VisionAnalysisResult]" = OrderedDict()

    @staticmethod
    def _get_model(model_name: str) -> genai.GenerativeModel:
        if not settings.gemini_api_key:
            raise ApiError(500, "GEMINI_API_KEY is not configured", LLM_NOT_CONFIGURED)

        try:
            genai.configure(api_key=settings.gemini_api_key)
            return genai.GenerativeModel(
                model_name=model_name,
                generation_config={"response_mime_type": "application/json"},
            )
        except Exception as exc:
            logger.exception("Gemini init failed: %s", exc)
            raise ApiError(500, "Failed to initialize Gemini client", LLM_NOT_CONFIGURED) from exc

    @staticmethod
    def _extract_text(response: Any) -> str:
        # .text raises when the candidate was blocked or has no parts
        text = response.text
        if not text:
            raise ValueError("Empty response from Gemini")
        return text

    @staticmethod
    def _clean_json(text: str) -> str:
        cleaned = text.strip()

        if cleaned.startswith("```"):
            cleaned = cleaned.replace("```json", "")
            cleaned = cleaned.replace("```", "").strip()

        match = _JSON_OBJECT_RE.search(cleaned)
        return match.group(0) if match else cleaned

    @classmethod
    def _parse_json(cls, raw_text: str) -> Any:
        clean = cls._clean_json(raw_text)
        try:
            return json.loads(clean)
        except (json.JSONDecodeError, RecursionError) as exc:
            logger.error("Gemini returned invalid JSON\nRAW:\n%s\nCLEAN:\n%s", raw_text, clean)
            raise ApiError(
                502,
                "Could not interpret the model response. Please try again.",
                LLM_RESPONSE_INVALID,
                {"kind": "json_parse"},
            ) from exc

    @classmethod
    async def _generate_text(cls, model: genai.GenerativeModel, contents: list) -> str:
        response = await asyncio.wait_for(
            asyncio.to_thread(model.generate_content, contents),
            timeout=settings.gemini_request_timeout_seconds,
        )
        text = cls._extract_text(response)
        logger.info("Gemini response received (length: %d)", len(text))
        return text

    @classmethod
    async def _analyze(cls, contents: list, kind: str) -> VisionAnalysisResult:
        model = cls._get_model(settings.gemini_vision_model)
        attempts = settings.gemini_max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                logger.info("Meal %s analysis attempt %d of %d", kind, attempt, attempts)
                raw_text = await cls._generate_text(model, contents)
                return sanitize_vision_analysis_result(cls._parse_json(raw_text))
            except ApiError:
                raise
            except Exception as exc:
                if attempt == attempts:
                    logger.exception("Meal %s analysis failed after %d attempts: %s", kind, attempts, exc)
                    raise ApiError(
                        502, f"Failed to analyze the meal {kind}", LLM_ANALYSIS_FAILED
                    ) from exc
                logger.warning("Meal %s analysis attempt %d failed: %s", kind, attempt, exc)
                await asyncio.sleep(settings.gemini_retry_delay_seconds)

        raise RuntimeError("unreachable")

    @classmethod
    def _remember(cls, key: str, result: VisionAnalysisResult) -> None:
        if settings.analysis_cache_size <= 0:
            return
        cls._cache[key] = result.model_copy(deep=True)
        cls._cache.move_to_end(key)
        while len(cls._cache) > settings.analysis_cache_size:
            cls._cache.popitem(last=False)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    @staticmethod
    def validate_image(data: bytes, mime_type: str) -> None:
        if not mime_type.startswith("image/"):
            raise ApiError(400, "File is not an image", INVALID_IMAGE)
        if not data:
            raise ApiError(400, "Empty image content", INVALID_IMAGE)
        if len(data) > settings.max_image_bytes:
            raise ApiError(400, "Image is too large", INVALID_IMAGE)

    @classmethod
    async def _fetch_image(cls, image_url: str) -> tuple[bytes, str]:
        if not image_url:
            raise ApiError(400, "imageUrl is required", INVALID_IMAGE)

        try:
            async with httpx.AsyncClient(timeout=15) as client:
                response = await client.get(image_url)
        except Exception as exc:
            logger.exception("Failed to fetch image: %s", exc)
            raise ApiError(400, "Failed to download image from URL", INVALID_IMAGE) from exc

        if response.status_code >= 400:
            raise ApiError(400, "Image URL returned error", INVALID_IMAGE)

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        data = response.content
        cls.validate_image(data, content_type)
        return data, content_type

    @classmethod
    async def analyze_meal_image(cls, image_bytes: bytes, mime_type: str) -> VisionAnalysisResult:
        cls.validate_image(image_bytes, mime_type)

        key = hashlib.sha256(image_bytes).hexdigest()
        cached = cls._cache.get(key)
        if cached is not None:
            logger.info("Meal image cache hit: %s", key)
            return cached.model_copy(deep=True)

        prompt = f"{VISION_SYSTEM_PROMPT}\n\nAnalyze this meal photo and answer in the format above."
        result = await cls._analyze([prompt, {"mime_type": mime_type, "data": image_bytes}], "image")
        cls._remember(key, result)
        return result

    @classmethod
    async def analyze_meal_image_url(cls, image_url: str) -> VisionAnalysisResult:
        image_bytes, mime_type = await cls._fetch_image(image_url)
        return await cls.analyze_meal_image(image_bytes, mime_type)

    @classmethod
    async def analyze_text_description(cls, description: str) -> VisionAnalysisResult:
        prompt = (
            f"{VISION_SYSTEM_PROMPT}\n\n"
            f'Meal description: "{description}"\n\n'
            "Analyze this meal description and answer in the format above. "
            "Estimate reasonable amounts from typical portions."
        )
        return await cls._analyze([prompt], "description")

    @staticmethod
    def _format_history(history: Optional[List[ChatMessage]]) -> str:
        if not history:
            return ""
        lines = [
            f"{'User' if item.role == 'user' else 'Assistant'}: {item.content}" for item in history
        ]
        return "\n\nConversation so far:\n" + "\n".join(lines)

    @classmethod
    async def chat_nutrition(
        cls, message: str, history: Optional[List[ChatMessage]] = None
    ) -> ChatResponse:
        model = cls._get_model(settings.gemini_model)
        prompt = f'{CHAT_SYSTEM_PROMPT}{cls._format_history(history)}\n\nUser message: "{message}"'

        try:
            raw_text = await cls._generate_text(model, [prompt])
        except Exception as exc:
            logger.exception("Nutrition chat request failed: %s", exc)
            raise ApiError(502, "Failed to process the chat message", LLM_CHAT_FAILED) from exc

        try:
            parsed = cls._parse_json(raw_text)
        except ApiError:
            return ChatResponse(message=raw_text.strip(), shouldRegisterMeal=False)

        meal_data = sanitize_chat_meal_data(dig(parsed, "mealData"))
        return ChatResponse(
            message=to_string_or_empty(dig(parsed, "message")) or raw_text.strip(),
            shouldRegisterMeal=meal_data is not None,
            mealData=meal_data,
        )
