from fastapi import APIRouter
from cierres.api.v1.endpoints import closings

api_router = APIRouter()

api_router.include_router(closings.router, prefix="/closings", tags=["closings"])
