"""Rate limiting dependencies for FastAPI routes.

This module wires the admission policies into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only
  (``Depends(login_rate_limit)`` and friends).
- The policy layer never sees a framework request: identity fields are
  extracted here and handed over as ``IdentityFields``.
- One process-wide counter store shared by all policies.

Upstream authentication is expected to put the authenticated user on
``request.state.user`` (object or mapping with ``id`` / ``studentId``).
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from fastapi import Request, Response

from trustelect.adapters.rate_limit.in_memory import InMemoryCounterStore
from trustelect.core.config import settings
from trustelect.core.errors import RateLimitExceededError
from trustelect.core.logging import mask_ip
from trustelect.services.admission import (
    Decision,
    IdentityFields,
    PolicyRegistry,
    hash_key,
)

logger = logging.getLogger(__name__)

POLICY_NAMES = ("login", "api", "voting", "ballot", "results")

_registry: PolicyRegistry | None = None
_registry_config: tuple[tuple[int, int], ...] | None = None


def _current_overrides() -> dict[str, tuple[int, int]]:
    return {name: settings.rate_limit.overrides_for(name) for name in POLICY_NAMES}


def get_policy_registry() -> PolicyRegistry:
    """Return the process-wide policy registry.

    The instance is cached in-module so counters survive across requests.
    If the window/limit configuration changes (primarily in tests), the
    registry is rebuilt with a fresh store.

    Returns:
        PolicyRegistry: Configured policies sharing one counter store.
    """

    global _registry, _registry_config

    overrides = _current_overrides()
    config = tuple(overrides[name] for name in POLICY_NAMES)

    if _registry is None or _registry_config != config:
        _registry = PolicyRegistry(InMemoryCounterStore(), overrides=overrides)
        _registry_config = config
        logger.info(
            "rate_limit.registry_built",
            extra={"policies": _registry.describe()},
        )

    return _registry


def reset_policy_registry() -> None:
    """Drop the cached registry and every counter with it."""

    global _registry, _registry_config
    _registry = None
    _registry_config = None


def _client_ip(request: Request) -> str | None:
    if settings.app.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return request.client.host if request.client else None


def _user_attr(user: Any, *names: str) -> Any:
    for name in names:
        if isinstance(user, dict):
            value = user.get(name)
        else:
            value = getattr(user, name, None)
        if value is not None:
            return value
    return None


async def _body_email(request: Request) -> str | None:
    # JSONDecodeError and UnicodeDecodeError are ValueErrors; absurdly nested
    # bodies overflow the decoder with RecursionError.
    try:
        payload = await request.json()
    except (ValueError, RecursionError):
        return None
    if isinstance(payload, dict):
        email = payload.get("email")
        return email if isinstance(email, str) else None
    return None


async def extract_identity(request: Request, *, policy_name: str) -> IdentityFields:
    """Collect identity fields for a policy from the request.

    Missing fields stay ``None``; the policy substitutes fallback literals.
    The request body is only read for the login policy.

    Args:
        request: FastAPI request.
        policy_name: Name of the policy the fields are for.

    Returns:
        IdentityFields: Populated identity.
    """

    user = getattr(request.state, "user", None)
    user_id = _user_attr(user, "id", "user_id") if user is not None else None
    student_id = _user_attr(user, "studentId", "student_id") if user is not None else None

    email = await _body_email(request) if policy_name == "login" else None
    election_id = request.path_params.get("id") or request.path_params.get("election_id")

    return IdentityFields(
        ip=_client_ip(request),
        user_id=None if user_id is None else str(user_id),
        email=email,
        student_id=None if student_id is None else str(student_id),
        election_id=None if election_id is None else str(election_id),
    )


def _log_decision(decision: Decision, identity: IdentityFields) -> None:
    extra = {
        "policy": decision.policy,
        "client_ip": mask_ip(identity.ip),
        "key_hash": hash_key(decision.key),
        "limit": decision.limit,
        "remaining": decision.remaining,
        "total_hits": decision.total_hits,
        "reset_time": decision.reset_time,
    }
    if decision.allowed:
        logger.debug("rate_limit.allowed", extra=extra)
        return
    logger.warning(
        "rate_limit.exceeded",
        extra={**extra, "retry_after_s": decision.retry_after_seconds},
    )


def rate_limit_dependency(policy_name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing one policy.

    When enabled, counts one attempt against the requester's key. Admitted
    responses carry the standard rate-limit headers; rejected requests raise
    ``RateLimitExceededError`` which the exception handler turns into a 429.
    A fault while extracting identity admits the request and is logged.

    Args:
        policy_name: One of ``POLICY_NAMES``.

    Raises:
        KeyError: If the policy name is unknown (at build time).
    """

    if policy_name not in POLICY_NAMES:
        raise KeyError(f"Unknown rate limit policy: {policy_name}")

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.app.rate_limit_enabled:
            return

        policy = get_policy_registry()[policy_name]
        try:
            identity = await extract_identity(request, policy_name=policy_name)
            decision = policy.check(identity)
        except Exception:
            logger.exception("rate_limit.fail_open", extra={"policy": policy_name})
            return
        _log_decision(decision, identity)

        if not decision.allowed:
            raise RateLimitExceededError(decision)

        if settings.app.rate_limit_include_headers:
            response.headers.update(decision.headers())

    enforce_rate_limit.__name__ = f"enforce_{policy_name}_rate_limit"
    return enforce_rate_limit


login_rate_limit = rate_limit_dependency("login")
api_rate_limit = rate_limit_dependency("api")
voting_rate_limit = rate_limit_dependency("voting")
ballot_rate_limit = rate_limit_dependency("ballot")
results_rate_limit = rate_limit_dependency("results")
