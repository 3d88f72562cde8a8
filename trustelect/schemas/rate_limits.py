from __future__ import annotations

from pydantic import BaseModel, Field


class PolicyInfo(BaseModel):
    """Public view of one admission policy."""

    name: str = Field(..., description="Route class guarded by the policy")
    key_prefix: str = Field(..., description="Namespace of the policy's limiter keys")
    window_seconds: int = Field(..., description="Fixed window length")
    max_requests: int = Field(..., description="Admitted requests per key per window")
    message: str = Field(..., description="Message returned with a 429")


class PolicyListResponse(BaseModel):
    enabled: bool
    policies: list[PolicyInfo]
