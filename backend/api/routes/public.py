"""Unauthenticated configuration for clients."""

from fastapi import APIRouter

from config.settings import settings

router = APIRouter()


@router.get("/public/config")
async def public_config():
    # Clients show the official domain so users can spot look-alike phishing sites.
    return {"official_app_domain": settings.official_app_domain or None}
