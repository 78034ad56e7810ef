import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ApiError
from .routes.chat import router as chat_router
from .routes.meal_analysis import router as meal_analysis_router
from .settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Nutrition AI",
    version="0.1.0",
    description="Meal photo and text analysis with validated nutrition data, plus a nutrition chat.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health():
    return {"status": "ok", "service": "nutrition-ai"}


app.include_router(meal_analysis_router)
app.include_router(chat_router)
