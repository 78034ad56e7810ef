"""Tests for VisionService with Gemini replaced by a fake model."""

import json

import httpx
import pytest

from nutrition_ai.errors import (
    INVALID_FOOD_IMAGE,
    INVALID_IMAGE,
    LLM_ANALYSIS_FAILED,
    LLM_CHAT_FAILED,
    LLM_NOT_CONFIGURED,
    LLM_RESPONSE_INVALID,
    ApiError,
)
from nutrition_ai.models.chat_schema import ChatMessage
from nutrition_ai.services import vision
from nutrition_ai.services.vision import VisionService
from nutrition_ai.settings import settings

MEAL_REPLY = json.dumps(
    {
        "is_food": True,
        "error": None,
        "reasoning": "Un plato de arroz",
        "foods": [
            {
                "name": "Arroz",
                "portion_grams": 150,
                "nutrition": {"calories": 200, "protein": 4, "carbs": 45, "fat": 1},
                "category": "carb",
                "confidence": 0.9,
            }
        ],
        "meal_analysis": {"health_score": 70, "health_feedback": "Añade proteína", "dominant_macro": "carbs"},
    }
)

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


def test_clean_json_strips_fences_and_prose():
    text = 'Here you go:\n```json\n{"foods": [], "reasoning": "x"}\n```\nThanks'
    assert json.loads(VisionService._clean_json(text)) == {"foods": [], "reasoning": "x"}


def test_parse_json_rejects_garbage():
    with pytest.raises(ApiError) as exc_info:
        VisionService._parse_json("I cannot see any food")

    assert exc_info.value.status_code == 502
    assert exc_info.value.code == LLM_RESPONSE_INVALID
    assert exc_info.value.details == {"kind": "json_parse"}


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)

    with pytest.raises(ApiError) as exc_info:
        VisionService._get_model("gemini-2.5-flash")

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == LLM_NOT_CONFIGURED


@pytest.mark.asyncio
async def test_analyze_text_description(fake_model):
    model = fake_model(MEAL_REPLY)

    result = await VisionService.analyze_text_description("un plato de arroz blanco")

    assert [f.name for f in result.foods] == ["Arroz"]
    assert result.totalNutrition.calories == 200
    assert 'Meal description: "un plato de arroz blanco"' in model.calls[0][0]


@pytest.mark.asyncio
async def test_invalid_json_is_not_retried(fake_model):
    model = fake_model("not json at all")

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_text_description("algo")

    assert exc_info.value.code == LLM_RESPONSE_INVALID
    assert len(model.calls) == 1


@pytest.mark.asyncio
async def test_not_food_is_not_retried(fake_model):
    model = fake_model(json.dumps({"is_food": False, "error": "Es un zapato"}))

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == INVALID_FOOD_IMAGE
    assert exc_info.value.message == "Es un zapato"
    assert len(model.calls) == 1


@pytest.mark.asyncio
async def test_transient_failure_is_retried(fake_model):
    model = fake_model(RuntimeError("503 Service Unavailable"), MEAL_REPLY)

    result = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")

    assert len(result.foods) == 1
    assert len(model.calls) == 2


@pytest.mark.asyncio
async def test_exhausted_retries(fake_model, monkeypatch):
    monkeypatch.setattr(settings, "gemini_max_retries", 2)
    model = fake_model(RuntimeError("boom"))

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")

    assert exc_info.value.status_code == 502
    assert exc_info.value.code == LLM_ANALYSIS_FAILED
    assert len(model.calls) == 3


@pytest.mark.asyncio
async def test_timeout_counts_as_failed_attempt(fake_model, monkeypatch):
    monkeypatch.setattr(settings, "gemini_max_retries", 0)
    monkeypatch.setattr(settings, "gemini_request_timeout_seconds", 0.01)
    fake_model(MEAL_REPLY, delay=0.2)

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_text_description("arroz")

    assert exc_info.value.code == LLM_ANALYSIS_FAILED


@pytest.mark.asyncio
async def test_empty_reply_is_retried(fake_model):
    model = fake_model("", MEAL_REPLY)

    result = await VisionService.analyze_text_description("arroz")

    assert len(result.foods) == 1
    assert len(model.calls) == 2


@pytest.mark.asyncio
async def test_image_results_are_cached(fake_model):
    model = fake_model(MEAL_REPLY)

    first = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")
    second = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")

    assert first == second
    assert len(model.calls) == 1


@pytest.mark.asyncio
async def test_cached_results_are_independent_copies(fake_model):
    fake_model(MEAL_REPLY)

    first = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")
    first.foods.clear()
    second = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")
    second.foods[0].name = "Otro"
    third = await VisionService.analyze_meal_image(JPEG_BYTES, "image/jpeg")

    assert second is not third
    assert [f.name for f in third.foods] == ["Arroz"]


@pytest.mark.asyncio
async def test_cache_evicts_oldest_entry(fake_model, monkeypatch):
    monkeypatch.setattr(settings, "analysis_cache_size", 1)
    model = fake_model(MEAL_REPLY)

    await VisionService.analyze_meal_image(b"image-one", "image/png")
    await VisionService.analyze_meal_image(b"image-two", "image/png")
    await VisionService.analyze_meal_image(b"image-one", "image/png")

    assert len(model.calls) == 3


@pytest.mark.parametrize(
    "data, mime_type",
    [(b"%PDF-1.4", "application/pdf"), (b"", "image/jpeg")],
)
def test_validate_image_rejects(data, mime_type):
    with pytest.raises(ApiError) as exc_info:
        VisionService.validate_image(data, mime_type)

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == INVALID_IMAGE


def test_validate_image_rejects_oversized(monkeypatch):
    monkeypatch.setattr(settings, "max_image_bytes", 4)

    with pytest.raises(ApiError):
        VisionService.validate_image(b"12345", "image/jpeg")


def _mock_http(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(vision.httpx, "AsyncClient", client_factory)


@pytest.mark.asyncio
async def test_analyze_meal_image_url(fake_model, monkeypatch):
    model = fake_model(MEAL_REPLY)
    _mock_http(
        monkeypatch,
        lambda request: httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "image/jpeg"}),
    )

    result = await VisionService.analyze_meal_image_url("https://cdn.example.com/meal.jpg")

    assert result.foods[0].name == "Arroz"
    assert model.calls[0][1] == {"mime_type": "image/jpeg", "data": JPEG_BYTES}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, content=b"missing"),
        httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"}),
        httpx.Response(200, content=b"", headers={"content-type": "image/png"}),
    ],
)
async def test_analyze_meal_image_url_rejects_bad_downloads(fake_model, monkeypatch, response):
    model = fake_model(MEAL_REPLY)
    _mock_http(monkeypatch, lambda request: response)

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_meal_image_url("https://cdn.example.com/meal.jpg")

    assert exc_info.value.code == INVALID_IMAGE
    assert model.calls == []


@pytest.mark.asyncio
async def test_analyze_meal_image_url_requires_url():
    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_meal_image_url("")

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_chat_with_meal_data(fake_model):
    fake_model(
        json.dumps(
            {
                "message": "¡Buen desayuno!",
                "mealData": {
                    "foods": [
                        {
                            "name": "Tostada",
                            "amount": 2,
                            "unit": "slice",
                            "nutrition": {"calories": 160, "protein": 6, "carbs": 30, "fat": 2},
                            "category": "carb",
                        }
                    ],
                    "mealType": "breakfast",
                },
            }
        )
    )

    response = await VisionService.chat_nutrition("Desayuné dos tostadas")

    assert response.message == "¡Buen desayuno!"
    assert response.shouldRegisterMeal is True
    assert response.mealData.foods[0].unit == "slice"
    assert response.mealData.totalNutrition.calories == 160
    assert response.mealData.mealType == "breakfast"


@pytest.mark.asyncio
async def test_chat_without_usable_meal_data(fake_model):
    fake_model(json.dumps({"message": "Come más fibra", "mealData": {"foods": []}}))

    response = await VisionService.chat_nutrition("¿Qué debo comer?")

    assert response.message == "Come más fibra"
    assert response.shouldRegisterMeal is False
    assert response.mealData is None


@pytest.mark.asyncio
async def test_chat_returns_raw_text_when_not_json(fake_model):
    fake_model("Hola, ¿en qué te ayudo?")

    response = await VisionService.chat_nutrition("hola")

    assert response.message == "Hola, ¿en qué te ayudo?"
    assert response.shouldRegisterMeal is False


DEEPLY_NESTED_REPLY = '{"message": ' + "[" * 100_000 + "]" * 100_000 + "}"


@pytest.mark.asyncio
async def test_chat_returns_raw_text_when_too_deeply_nested(fake_model):
    fake_model(DEEPLY_NESTED_REPLY)

    response = await VisionService.chat_nutrition("hola")

    assert response.message == DEEPLY_NESTED_REPLY
    assert response.shouldRegisterMeal is False
    assert response.mealData is None


@pytest.mark.asyncio
async def test_deeply_nested_analysis_reply_is_invalid_json(fake_model):
    model = fake_model(DEEPLY_NESTED_REPLY)

    with pytest.raises(ApiError) as exc_info:
        await VisionService.analyze_text_description("arroz")

    assert exc_info.value.code == LLM_RESPONSE_INVALID
    assert len(model.calls) == 1


@pytest.mark.asyncio
async def test_chat_includes_history(fake_model):
    model = fake_model(json.dumps({"message": "ok"}))
    history = [
        ChatMessage(role="user", content="Hola"),
        ChatMessage(role="assistant", content="¡Hola!"),
    ]

    await VisionService.chat_nutrition("¿Y ahora?", history)

    prompt = model.calls[0][0]
    assert "User: Hola\nAssistant: ¡Hola!" in prompt
    assert 'User message: "¿Y ahora?"' in prompt


@pytest.mark.asyncio
async def test_chat_failure(fake_model):
    fake_model(RuntimeError("quota exceeded"))

    with pytest.raises(ApiError) as exc_info:
        await VisionService.chat_nutrition("hola")

    assert exc_info.value.status_code == 502
    assert exc_info.value.code == LLM_CHAT_FAILED
