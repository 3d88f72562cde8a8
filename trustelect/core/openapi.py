"""OpenAPI customization utilities.

Enriches the generated schema with:
- Tags metadata
- A shared ``TooManyRequests`` response component (body and headers of a
  rejected request) referenced from every rate limited operation

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_UNGUARDED_SUFFIXES = ("/health",)

_TOO_MANY_REQUESTS: Dict[str, Any] = {
    "description": "Rate limit exceeded for this route class.",
    "headers": {
        "Retry-After": {"schema": {"type": "integer"}, "description": "Seconds before retrying."},
        "RateLimit-Limit": {"schema": {"type": "integer"}},
        "RateLimit-Remaining": {"schema": {"type": "integer"}},
        "RateLimit-Reset": {"schema": {"type": "integer"}, "description": "Seconds until the window resets."},
    },
    "content": {
        "application/json": {
            "schema": {
                "type": "object",
                "required": ["message", "retryAfter"],
                "properties": {
                    "message": {"type": "string"},
                    "retryAfter": {"type": "integer"},
                },
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        responses = components.setdefault("responses", {})
        responses.setdefault("TooManyRequests", _TOO_MANY_REQUESTS)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Rate limits",
                "description": "Admission policies guarding the election API.",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith(_UNGUARDED_SUFFIXES):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", {"$ref": "#/components/responses/TooManyRequests"}
                    )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
