"""API v1 Router - aggregates all endpoints"""
from fastapi import APIRouter
from .portfolio import router as portfolio_router

api_router = APIRouter()

api_router.include_router(portfolio_router, prefix="/portfolio", tags=["portfolio"])
