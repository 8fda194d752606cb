"""phoneauth API Router - aggregates the authenticated API routes."""

from fastapi import APIRouter

from phoneauth.api import otp, session

api_router = APIRouter()

api_router.include_router(otp.router)
api_router.include_router(session.router)
