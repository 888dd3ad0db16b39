from fastapi import APIRouter, Depends, Path

from api.routes import get_services

router = APIRouter(tags=["Refugees"])


@router.get("/refugees/unhcr")
async def get_refugee_data(services=Depends(get_services)):
    result = await services.refugees.get_all_refugee_data()
    return {**result, "metadata": {"note": "UNHCR Population API merged with the 2023 baseline"}}


@router.get("/refugees/unhcr/stats/global")
async def get_global_displacement_stats(services=Depends(get_services)):
    return await services.refugees.get_global_displacement_stats()


@router.get("/refugees/unhcr/{country}")
async def get_country_refugee_data(
    country: str = Path(..., min_length=2, max_length=50),
    services=Depends(get_services),
):
    """Displacement for one origin country; misses list available countries."""
    return await services.refugees.get_refugee_data_by_country(country)
