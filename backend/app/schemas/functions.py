"""Function-call webhook request/response schemas."""

from typing import Any
from pydantic import BaseModel


class FunctionsStatusResponse(BaseModel):
    status: str
    endpoint: str
    functions: list[str]


class AckResponse(BaseModel):
    ok: bool = True
    ignored: bool = True
    reason: str


class ResultsEnvelope(BaseModel):
    results: list[dict[str, Any]]
