from fastapi import APIRouter, Depends, HTTPException, Path

from api.routes import get_services

router = APIRouter(tags=["Countries"])


@router.get("/countries")
async def get_countries(services=Depends(get_services)):
    """All countries; bundled fallback records when REST Countries is down."""
    return await services.geography.get_all_countries()


@router.get("/countries/region/{region}")
async def get_countries_by_region(
    region: str = Path(..., min_length=2, max_length=30),
    services=Depends(get_services),
):
    return await services.geography.get_countries_by_region(region)


@router.get("/countries/{name}")
async def get_country(
    name: str = Path(..., min_length=2, max_length=50),
    services=Depends(get_services),
):
    result = await services.geography.get_country_by_name(name)
    if not result.get("success"):
        raise HTTPException(status_code=404, detail=result)
    return result
