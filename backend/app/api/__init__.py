"""API router initialization"""
from fastapi import APIRouter
from app.api.routes import auth, instruments, pin, webhook

# Mounted at the application root
api_router = APIRouter()

api_router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(instruments.router, prefix="/api", tags=["instruments"])
api_router.include_router(pin.router, prefix="/api", tags=["pin"])
