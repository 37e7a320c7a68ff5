from typing import Any, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException


class ApiError(HTTPException):
    """Base error rendered into the JSON error envelope."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(status_code=self.status_code, detail=self.message)


class BadRequest(ApiError):
    status_code = 400
    default_message = "Bad request"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized request"


class Forbidden(ApiError):
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class InternalError(ApiError):
    status_code = 500
    default_message = "Internal server error"


def error_envelope(status_code: int, message: str, errors: Optional[List[Any]] = None) -> dict:
    return {
        "statusCode": status_code,
        "success": False,
        "message": message,
        "errors": errors or [],
        "data": None,
    }


def objid(id_str: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise BadRequest(f"Invalid {label}")


def ensure_owner(doc: dict, user: dict, action: str = "modify") -> None:
    # compares the resource owner with the principal, never the resource with itself
    if doc.get("owner") != user["_id"]:
        raise Forbidden(f"You are not allowed to {action} this resource")


def field_errors(errors: Iterable[dict]) -> List[dict]:
    """Flatten pydantic error dicts into ``{field, message}`` pairs."""
    out = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return out
