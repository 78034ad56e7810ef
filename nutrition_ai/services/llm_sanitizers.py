"""Turn loosely structured Gemini JSON into bounded nutrition records.

Only one condition is a hard failure: the model explicitly answering
``is_food: false``. Everything else (wrong types, missing fields, values out
of range, junk rows) is repaired or dropped so that a single bad field never
fails a whole request.
"""

import logging
import math
from typing import Any, Iterable, List, Optional

from ..errors import INVALID_FOOD_IMAGE, ApiError
from ..models.chat_schema import ChatMealFood, ChatMealPayload
from ..models.meal_analysis_schema import (
    DetectedFood,
    MealAnalysisSummary,
    NutritionData,
    Portion,
    VisionAnalysisResult,
)
from .coercion import (
    clamp,
    dig,
    first_present,
    sanitize_category,
    sanitize_unit,
    to_finite_number,
    to_string_or_empty,
)
from .meal_heuristics import is_clearly_non_food_name

logger = logging.getLogger(__name__)

MAX_PORTION_AMOUNT = 9999.99
MAX_FOOD_NUTRIENT = 99_999
MAX_TOTAL_NUTRIENT = 999_999
DEFAULT_CONFIDENCE = 0.5
DEFAULT_HEALTH_SCORE = 50
DEFAULT_MEAL_TYPE = "snack"
NOT_FOOD_MESSAGE = "No valid food was detected in the image."

MACROS = ("calories", "protein", "carbs", "fat")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _optional_positive(value: Any, ceiling: float) -> Optional[float]:
    number = to_finite_number(value, math.nan)
    if not math.isfinite(number) or number <= 0:
        return None
    return clamp(number, 0, ceiling)


def _food_nutrition(food: Any, allow_flat: bool) -> NutritionData:
    def read(key: str) -> Any:
        nested = dig(food, "nutrition", key)
        return first_present(nested, dig(food, key)) if allow_flat else nested

    values = {key: clamp(to_finite_number(read(key), 0), 0, MAX_FOOD_NUTRIENT) for key in MACROS}
    return NutritionData(
        calories=int(round(values["calories"])),
        protein=values["protein"],
        carbs=values["carbs"],
        fat=values["fat"],
        fiber=_optional_positive(read("fiber"), MAX_FOOD_NUTRIENT),
    )


def _has_signal(amount: float, nutrition: NutritionData) -> bool:
    # Zero portion with zero macros is model filler, not a detected food.
    return amount > 0 or any(getattr(nutrition, key) > 0 for key in MACROS)


def _accepted_name(food: Any) -> str:
    name = to_string_or_empty(dig(food, "name"))
    if not name or is_clearly_non_food_name(name):
        return ""
    return name


def _sum_nutrition(items: Iterable[NutritionData]) -> NutritionData:
    items = list(items)
    fibers = [n.fiber for n in items if n.fiber is not None]
    return NutritionData(
        calories=int(clamp(sum(n.calories for n in items), 0, MAX_TOTAL_NUTRIENT)),
        protein=clamp(sum(n.protein for n in items), 0, MAX_TOTAL_NUTRIENT),
        carbs=clamp(sum(n.carbs for n in items), 0, MAX_TOTAL_NUTRIENT),
        fat=clamp(sum(n.fat for n in items), 0, MAX_TOTAL_NUTRIENT),
        fiber=clamp(sum(fibers), 0, MAX_TOTAL_NUTRIENT) if fibers else None,
    )


def _sanitize_detected_food(food: Any) -> Optional[DetectedFood]:
    name = _accepted_name(food)
    if not name:
        return None

    amount_raw = first_present(
        dig(food, "portion_grams"),
        dig(food, "portion", "amount"),
        dig(food, "portion_amount"),
    )
    amount = clamp(to_finite_number(amount_raw, 0), 0, MAX_PORTION_AMOUNT)
    nutrition = _food_nutrition(food, allow_flat=True)
    if not _has_signal(amount, nutrition):
        return None

    ingredients = [to_string_or_empty(i) for i in _as_list(dig(food, "detected_ingredients"))]

    return DetectedFood(
        name=name,
        confidence=clamp(to_finite_number(dig(food, "confidence"), DEFAULT_CONFIDENCE), 0, 1),
        # Portions from the vision prompt are always grams.
        portion=Portion(amount=amount, unit=sanitize_unit("g")),
        nutrition=nutrition,
        category=sanitize_category(dig(food, "category")),
        detected_ingredients=[i for i in ingredients if i],
        portion_display=to_string_or_empty(dig(food, "portion_display")),
        portion_grams=amount,
    )


def sanitize_vision_analysis_result(raw: Any) -> VisionAnalysisResult:
    """Validate a meal-photo (or meal-text) analysis from the vision model.

    Raises ``ApiError`` (400, ``INVALID_FOOD_IMAGE``) when the model says the
    input holds no food. ``totalNutrition`` is always the sum of the accepted
    foods; totals declared by the model are ignored.
    """
    if dig(raw, "is_food") is False:
        message = to_string_or_empty(dig(raw, "error")) or NOT_FOOD_MESSAGE
        raise ApiError(400, message, INVALID_FOOD_IMAGE)

    foods_raw = _as_list(dig(raw, "foods"))
    foods: List[DetectedFood] = []
    for food_raw in foods_raw:
        food = _sanitize_detected_food(food_raw)
        if food is not None:
            foods.append(food)

    if len(foods) < len(foods_raw):
        logger.debug("Dropped %d of %d analysis food rows", len(foods_raw) - len(foods), len(foods_raw))

    meal_analysis = MealAnalysisSummary(
        health_score=clamp(
            to_finite_number(dig(raw, "meal_analysis", "health_score"), DEFAULT_HEALTH_SCORE), 0, 100
        ),
        health_feedback=to_string_or_empty(dig(raw, "meal_analysis", "health_feedback")),
        dominant_macro=to_string_or_empty(dig(raw, "meal_analysis", "dominant_macro")),
    )

    return VisionAnalysisResult(
        reasoning=to_string_or_empty(dig(raw, "reasoning")),
        foods=foods,
        meal_analysis=meal_analysis,
        totalNutrition=_sum_nutrition(f.nutrition for f in foods),
    )


def _sanitize_chat_food(food: Any) -> Optional[ChatMealFood]:
    name = _accepted_name(food)
    if not name:
        return None

    amount_raw = first_present(dig(food, "amount"), dig(food, "portion", "amount"))
    amount = clamp(to_finite_number(amount_raw, 0), 0, MAX_PORTION_AMOUNT)
    nutrition = _food_nutrition(food, allow_flat=False)
    if not _has_signal(amount, nutrition):
        return None

    return ChatMealFood(
        name=name,
        amount=amount,
        unit=sanitize_unit(first_present(dig(food, "unit"), dig(food, "portion", "unit"))),
        nutrition=nutrition,
        category=sanitize_category(dig(food, "category")),
    )


def _reconcile_totals(declared: Any, computed: NutritionData) -> NutritionData:
    def resolve(key: str) -> float:
        value = to_finite_number(dig(declared, key), getattr(computed, key))
        return clamp(value, 0, MAX_TOTAL_NUTRIENT)

    fiber = to_finite_number(dig(declared, "fiber"), computed.fiber or 0)
    return NutritionData(
        calories=int(round(resolve("calories"))),
        protein=resolve("protein"),
        carbs=resolve("carbs"),
        fat=resolve("fat"),
        fiber=clamp(fiber, 0, MAX_TOTAL_NUTRIENT) if fiber > 0 else None,
    )


def sanitize_chat_meal_data(raw: Any) -> Optional[ChatMealPayload]:
    """Validate the optional ``mealData`` of a chat reply.

    Returns None when no usable food survives, which tells the caller the
    turn is not a meal registration. Unlike the analysis path, totals declared
    by the model win over the recomputed sum whenever they are finite, since
    chat food lists may be partial.
    """
    foods: List[ChatMealFood] = []
    for food_raw in _as_list(dig(raw, "foods")):
        food = _sanitize_chat_food(food_raw)
        if food is not None:
            foods.append(food)

    if not foods:
        return None

    computed = _sum_nutrition(f.nutrition for f in foods)

    return ChatMealPayload(
        foods=foods,
        totalNutrition=_reconcile_totals(dig(raw, "totalNutrition"), computed),
        mealType=to_string_or_empty(dig(raw, "mealType")) or DEFAULT_MEAL_TYPE,
    )
