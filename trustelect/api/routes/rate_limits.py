from __future__ import annotations

from fastapi import APIRouter, Depends

from trustelect.core.config import settings
from trustelect.core.rate_limit import api_rate_limit, get_policy_registry
from trustelect.schemas.rate_limits import PolicyInfo, PolicyListResponse

router = APIRouter(tags=["Rate limits"])


@router.get(
    "/rate-limits",
    response_model=PolicyListResponse,
    dependencies=[Depends(api_rate_limit)],
)
def list_rate_limits() -> PolicyListResponse:
    """List the configured admission policies.

    Lets operators and the frontend see which windows and limits are in
    force without reading the deployment's environment.
    """

    registry = get_policy_registry()
    return PolicyListResponse(
        enabled=settings.app.rate_limit_enabled,
        policies=[PolicyInfo(**info) for info in registry.describe()],
    )
