"""
Process-wide application state.

An AppContext is built once per app, stored on ``app.state.context`` and
opened/closed by the FastAPI lifespan in main.py. Route handlers get it
through ``Depends(get_context)``.
"""

from typing import Optional

from fastapi import Request
from pymongo import MongoClient

from config import Settings
from database import Database
from media import MediaStore


class AppContext:
    def __init__(self, settings: Settings, client: Optional[MongoClient] = None,
                 media: Optional[MediaStore] = None):
        self.settings = settings
        self.db = Database(settings, client=client)
        self.media = media or MediaStore(settings.upload_dir, settings.media_base_url)

    def connect(self) -> "AppContext":
        self.db.connect()
        return self

    def close(self) -> None:
        self.db.close()


def get_context(request: Request) -> AppContext:
    return request.app.state.context
