"""
Runtime LLM configuration schemas.

Keys stay snake_case on the wire to match the YAML document.
"""

from typing import Optional

from pydantic import BaseModel, Field


class LLMConfigResponse(BaseModel):
    """LLM block as shown to operators; ``api_key`` is always masked."""

    enabled: bool
    endpoint: str
    api_key: str
    model: str
    timeout: int


class LLMConfigUpdate(BaseModel):
    """Partial update; unset fields keep their current value."""

    enabled: Optional[bool] = None
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    timeout: Optional[int] = Field(None, ge=1)
