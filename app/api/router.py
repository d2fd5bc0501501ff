"""Centralized API router registration."""

from fastapi import APIRouter

from app.routers import collaboration

api_router = APIRouter()
api_router.include_router(collaboration.router)

__all__ = ["api_router"]
