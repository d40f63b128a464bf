"""Shared response schemas."""

from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Simple message acknowledgement."""

    message: str


class ErrorResponse(BaseModel):
    """Error body returned for KPI engine failures."""

    detail: str
    code: str


# Extra OpenAPI responses for routes that write through the KPI engine
KPI_ERROR_RESPONSES: dict = {
    503: {"model": ErrorResponse, "description": "KPI row busy, retry later"},
}
