"""
Shared helpers for API routes
"""
from typing import Any, List, Optional, Type
from fastapi import Request, Query
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def camelize(value: Any) -> Any:
    """
    Rename snake_case dict keys to camelCase, recursively.
    Upper-case keys (statuses, categories) are data and stay as they are.
    Pydantic models are left to their own aliases.
    """
    if isinstance(value, dict):
        return {
            to_camel(key) if isinstance(key, str) and key.islower() and "_" in key else key: camelize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [camelize(item) for item in value]
    return value


def success(data: Any = None, **extra) -> dict:
    """Standard success envelope, camelCase keys throughout"""
    body = {"success": True, "data": camelize(data)}
    body.update({to_camel(key): camelize(value) for key, value in extra.items() if value is not None})
    return body


def serialize(schema: Type[BaseModel], items) -> List[BaseModel]:
    return [schema.model_validate(item) for item in items]


def paginated(schema: Type[BaseModel], items, total: int, page: int, limit: int, **extra) -> dict:
    return success(
        serialize(schema, items),
        **extra,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        },
    )


def get_client_info(request: Request) -> tuple:
    """Extract client IP and user agent from request"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = "unknown"

    user_agent = request.headers.get("User-Agent", "")[:500]
    return ip_address, user_agent


class PageParams:
    def __init__(self, page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100)):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
