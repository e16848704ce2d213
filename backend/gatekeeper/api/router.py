"""Gatekeeper API Router - aggregates all /api routes."""

from fastapi import APIRouter

from gatekeeper.api import roles

# Main API router - all routes will be prefixed with /api
api_router = APIRouter(prefix="/api")

api_router.include_router(roles.router)
