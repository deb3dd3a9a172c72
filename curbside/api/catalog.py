"""Service catalog endpoint"""

from fastapi import APIRouter

from curbside.services.catalog import CatalogService, list_services

router = APIRouter()


@router.get("/catalog", response_model=list[CatalogService])
async def get_catalog() -> list[CatalogService]:
    """Services, their options and prices in cents"""
    return list_services()
