from __future__ import annotations
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from scalar_fastapi import get_scalar_api_reference

from api.database import get_async_session
from api.routers.system import SystemRoutesManager
from services.redis import RedisClient
from services.sitemap import SitemapService

router = APIRouter()

SRM = SystemRoutesManager()


def get_cache() -> RedisClient | None:
    return SRM.get_cache()


@router.get("/check-health", include_in_schema=False)
def check_health():
    return {"ok": True}


@router.get("/scalar", include_in_schema=False)
def get_scalar(request: Request):
    app = request.app

    return get_scalar_api_reference(
        title=app.title,
        openapi_url=app.openapi_url,
    )


@router.get("/sitemap.xml", include_in_schema=False)
async def sitemap(
    session: AsyncSession = Depends(get_async_session),
    cache: RedisClient | None = Depends(get_cache),
):
    xml = await SitemapService(session, cache).render()
    return Response(content=xml, media_type="application/xml")
