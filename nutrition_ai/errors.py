from typing import Any

from fastapi import HTTPException

INVALID_FOOD_IMAGE = "INVALID_FOOD_IMAGE"
INVALID_IMAGE = "INVALID_IMAGE"
LLM_NOT_CONFIGURED = "LLM_NOT_CONFIGURED"
LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"
LLM_ANALYSIS_FAILED = "LLM_ANALYSIS_FAILED"
LLM_CHAT_FAILED = "LLM_CHAT_FAILED"


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable error code for mobile clients."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.code = code
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload
