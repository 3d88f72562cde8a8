"""Admission control policies for guarded route classes.

A ``Policy`` wraps the shared counter store with one route class's window,
limit, key derivation and rejection message, and turns each request's
``IdentityFields`` into an admit/reject ``Decision``.

Ordering matters: the counter is incremented before the limit is compared,
so the store counts attempts rather than admissions. The request that brings
the count to ``max_requests`` is admitted; only the one after it is rejected.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field

from trustelect.adapters.rate_limit.base import AbstractCounterStore
from trustelect.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
ANONYMOUS = "anonymous"

TOO_MANY_REQUESTS = 429


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def hash_key(key: str) -> str:
    """Hash a limiter key for logging without exposing emails or IPs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class IdentityFields:
    """Caller identity as extracted by the HTTP layer.

    Any field may be missing; key functions substitute fallback literals.
    """

    ip: str | None = None
    user_id: str | None = None
    email: str | None = None
    student_id: str | None = None
    election_id: str | None = None


def _field(value: object, fallback: str) -> str:
    if value is None:
        return fallback
    text = str(value)
    return text if text else fallback


def login_components(identity: IdentityFields) -> tuple[str, ...]:
    return (_field(identity.ip, UNKNOWN), _field(identity.email, UNKNOWN))


def api_components(identity: IdentityFields) -> tuple[str, ...]:
    return (_field(identity.ip, UNKNOWN), _field(identity.user_id, ANONYMOUS))


def vote_components(identity: IdentityFields) -> tuple[str, ...]:
    return (_field(identity.user_id, ANONYMOUS), _field(identity.student_id, UNKNOWN))


def ballot_components(identity: IdentityFields) -> tuple[str, ...]:
    return (_field(identity.user_id, ANONYMOUS), _field(identity.election_id, UNKNOWN))


def results_components(identity: IdentityFields) -> tuple[str, ...]:
    return (_field(identity.ip, UNKNOWN),)


class RejectionBody(BaseModel):
    """JSON payload returned with a 429."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    retry_after_seconds: int = Field(alias="retryAfter")

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class Decision:
    """Outcome of ``Policy.check``.

    Attributes:
        allowed: Whether the request may proceed.
        policy: Name of the policy that decided.
        key: Logical limiter key the attempt was counted under.
        total_hits: Attempts counted in the current window (0 on fail-open).
        limit: Policy's ``max_requests``.
        reset_time: Epoch milliseconds when the current window ends.
        now_ms: Time the decision was taken at.
        retry_after_seconds: Window length in seconds, as advertised to clients.
        body: Rejection payload; ``None`` when admitted.
    """

    allowed: bool
    policy: str
    key: str
    total_hits: int
    limit: int
    reset_time: int
    now_ms: int
    retry_after_seconds: int
    body: RejectionBody | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.total_hits)

    @property
    def status_code(self) -> int:
        return 200 if self.allowed else TOO_MANY_REQUESTS

    def headers(self) -> dict[str, str]:
        """Standard rate-limit headers; legacy ``X-RateLimit-*`` are never set."""
        reset_seconds = max(0, math.ceil((self.reset_time - self.now_ms) / 1000))
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(reset_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


# Returns the identity part of a key; the policy adds its own prefix.
KeyFn = Callable[[IdentityFields], tuple[str, ...]]


@dataclass
class Policy:
    """Admission policy for one guarded route class.

    Raises:
        ConfigurationAppError: If ``window_ms`` or ``max_requests`` is not
            positive. Misconfiguration fails at startup, never per request.
    """

    name: str
    prefix: str
    window_ms: int
    max_requests: int
    key_fn: KeyFn
    message: str
    store: AbstractCounterStore
    clock: Callable[[], int] = field(default=epoch_ms)

    def __post_init__(self) -> None:
        if not self.prefix or ":" in self.prefix:
            raise ConfigurationAppError(
                code="invalid_key_prefix",
                message=f"Policy '{self.name}' prefix must be non-empty and contain no ':'",
                details={"policy": self.name, "field": "prefix", "actual_value": self.prefix},
            )
        if self.window_ms <= 0:
            raise ConfigurationAppError(
                code="invalid_window",
                message=f"Policy '{self.name}' window_ms must be > 0",
                details={"policy": self.name, "field": "window_ms", "actual_value": self.window_ms},
            )
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_limit",
                message=f"Policy '{self.name}' max_requests must be > 0",
                details={"policy": self.name, "field": "max_requests", "actual_value": self.max_requests},
            )

    @property
    def retry_after_seconds(self) -> int:
        return self.window_ms // 1000

    @property
    def response_body(self) -> RejectionBody:
        return RejectionBody(message=self.message, retry_after_seconds=self.retry_after_seconds)

    def key_for(self, identity: IdentityFields) -> str:
        """Build the limiter key, always namespaced by this policy's prefix."""
        return ":".join((self.prefix, *self.key_fn(identity)))

    def check(self, identity: IdentityFields, now_ms: int | None = None) -> Decision:
        """Count this attempt and decide whether it may proceed.

        Faults in the clock, key derivation or the store are logged and the
        request is admitted (fail open); this method never raises.
        """
        now = now_ms

        try:
            if now is None:
                now = self.clock()
            key = self.key_for(identity)
            result = self.store.increment(key, self.window_ms, now)
        except Exception:
            logger.exception(
                "rate_limit.fail_open",
                extra={"policy": self.name, "window_ms": self.window_ms},
            )
            if now is None:
                now = epoch_ms()
            window_end = (now // self.window_ms + 1) * self.window_ms
            return Decision(
                allowed=True,
                policy=self.name,
                key="",
                total_hits=0,
                limit=self.max_requests,
                reset_time=window_end,
                now_ms=now,
                retry_after_seconds=self.retry_after_seconds,
            )

        allowed = result.total_hits <= self.max_requests
        return Decision(
            allowed=allowed,
            policy=self.name,
            key=key,
            total_hits=result.total_hits,
            limit=self.max_requests,
            reset_time=result.reset_time,
            now_ms=now,
            retry_after_seconds=self.retry_after_seconds,
            body=None if allowed else self.response_body,
        )


@dataclass(frozen=True)
class PolicySpec:
    """Static configuration row for one policy."""

    name: str
    prefix: str
    window_seconds: int
    max_requests: int
    key_fn: KeyFn
    message: str


POLICY_TABLE: tuple[PolicySpec, ...] = (
    PolicySpec(
        name="login",
        prefix="login",
        window_seconds=15 * 60,
        max_requests=10,
        key_fn=login_components,
        message="Too many login attempts. Please try again in 15 minutes.",
    ),
    PolicySpec(
        name="api",
        prefix="api",
        window_seconds=60,
        max_requests=200,
        key_fn=api_components,
        message="Too many requests. Please slow down.",
    ),
    PolicySpec(
        name="voting",
        prefix="vote",
        window_seconds=5 * 60,
        max_requests=3,
        key_fn=vote_components,
        message="Too many voting attempts. Please wait before trying again.",
    ),
    PolicySpec(
        name="ballot",
        prefix="ballot",
        window_seconds=60,
        max_requests=20,
        key_fn=ballot_components,
        message="Too many ballot requests. Please wait a moment.",
    ),
    PolicySpec(
        name="results",
        prefix="results",
        window_seconds=30,
        max_requests=60,
        key_fn=results_components,
        message="Too many results requests. Please wait a moment.",
    ),
)


class PolicyRegistry:
    """The configured policies, all sharing one counter store.

    Args:
        store: Counter store shared by every policy.
        table: Policy rows; defaults to ``POLICY_TABLE``.
        overrides: Optional ``name -> (window_seconds, max_requests)``.
        clock: Time source in epoch milliseconds.

    Raises:
        ConfigurationAppError: On duplicate names or key prefixes, or an
            invalid window/limit.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        table: tuple[PolicySpec, ...] = POLICY_TABLE,
        overrides: Mapping[str, tuple[int, int]] | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = store
        self._policies: dict[str, Policy] = {}
        seen_prefixes: set[str] = set()
        overrides = overrides or {}

        for spec in table:
            if spec.name in self._policies:
                raise ConfigurationAppError(
                    code="duplicate_policy",
                    message=f"Policy '{spec.name}' is configured twice",
                    details={"policy": spec.name},
                )
            if spec.prefix in seen_prefixes:
                raise ConfigurationAppError(
                    code="duplicate_key_prefix",
                    message=f"Key prefix '{spec.prefix}' is shared by more than one policy",
                    details={"policy": spec.name, "field": "prefix", "actual_value": spec.prefix},
                )
            seen_prefixes.add(spec.prefix)

            window_seconds, max_requests = overrides.get(
                spec.name, (spec.window_seconds, spec.max_requests)
            )
            self._policies[spec.name] = Policy(
                name=spec.name,
                prefix=spec.prefix,
                window_ms=window_seconds * 1000,
                max_requests=max_requests,
                key_fn=spec.key_fn,
                message=spec.message,
                store=store,
                clock=clock,
            )

    def __getitem__(self, name: str) -> Policy:
        return self._policies[name]

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def __iter__(self) -> Iterator[Policy]:
        return iter(self._policies.values())

    def __len__(self) -> int:
        return len(self._policies)

    def describe(self) -> list[dict[str, object]]:
        """Summarize configured policies for introspection endpoints."""
        return [
            {
                "name": policy.name,
                "key_prefix": policy.prefix,
                "window_seconds": policy.retry_after_seconds,
                "max_requests": policy.max_requests,
                "message": policy.message,
            }
            for policy in self
        ]
