import structlog
from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from context import AppContext, get_context
from responses import api_response

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/healthcheck", tags=["healthcheck"])


@router.get("")
def healthcheck(ctx: AppContext = Depends(get_context)):
    info = {
        "status": "OK",
        "database": {
            "name": ctx.db.name,
            "connected": False,
            "collections": [],
        },
    }
    try:
        if ctx.db.connected:
            info["database"]["collections"] = ctx.db.list_collection_names()
            info["database"]["connected"] = True
    except PyMongoError as e:
        logger.warning("healthcheck_database_unreachable", error=str(e))
        info["database"]["error"] = str(e)
    return api_response(200, info, "Service is healthy")
