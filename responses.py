from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from fastapi.responses import JSONResponse

# stripped from every stored document on the way out, not even shown to the owner
PRIVATE_USER_FIELDS = ("password", "refreshToken")


def to_str_id(doc):
    """Make a Mongo document JSON friendly: ``_id`` becomes ``id``, ObjectIds
    become strings and datetimes ISO strings. Recurses into nested documents
    and arrays produced by lookups."""
    if isinstance(doc, list):
        return [to_str_id(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    d = {}
    for k, v in doc.items():
        if k in PRIVATE_USER_FIELDS and "_id" in doc:
            continue
        d["id" if k == "_id" else k] = to_str_id(v)
    return d


def api_response(status_code: int, data: Any, message: str = "Success", headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "success": status_code < 400,
            "data": to_str_id(data),
            "message": message,
        },
        headers=headers,
    )
