from fastapi import APIRouter

from routers import comments, dashboard, healthcheck, likes, playlists, subscriptions, tweets, users, videos

api_router = APIRouter(prefix="/api/v1")

for module in (healthcheck, users, videos, comments, likes, playlists, subscriptions, tweets, dashboard):
    api_router.include_router(module.router)
