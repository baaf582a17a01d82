"""
Main API router aggregator
"""
from fastapi import APIRouter

from uplaw.api.v1.endpoints import cases, health, proposals, timeline

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(timeline.router, prefix="/cases", tags=["Timeline"])
api_router.include_router(proposals.router, prefix="/proposals", tags=["Proposals"])
