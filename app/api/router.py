from fastapi import APIRouter

from app.api.routes import roster

api_router = APIRouter(prefix="/v1")

api_router.include_router(roster.router, prefix="/roster", tags=["roster"])
