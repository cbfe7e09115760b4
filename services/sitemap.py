import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable
from xml.etree import ElementTree as ET

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import SeoPage
from config import ENV, get_env
from services.redis import RedisClient
from utils.clock import utcnow

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
CACHE_KEY = "sitemap.xml"


@dataclass(frozen=True)
class StaticPage:
    path: str
    priority: str
    changefreq: str


STATIC_PAGES = (
    StaticPage("/", "1.0", "daily"),
    StaticPage("/help", "0.7", "weekly"),
)


def build_sitemap(pages: Iterable[SeoPage], static_pages: Iterable[StaticPage], base_url: str, today: date | None = None) -> str:
    today = today or utcnow().date()
    base_url = base_url.rstrip("/")
    urlset = ET.Element("urlset", xmlns=SITEMAP_NS)

    def add(loc: str, lastmod: date, changefreq: str, priority: str) -> None:
        url = ET.SubElement(urlset, "url")
        ET.SubElement(url, "loc").text = loc
        ET.SubElement(url, "lastmod").text = lastmod.strftime("%Y-%m-%d")
        ET.SubElement(url, "changefreq").text = changefreq
        ET.SubElement(url, "priority").text = priority

    for page in pages:
        if page.no_index:
            continue
        loc = page.canonical_url or f"{base_url}/{page.page_slug.lstrip('/')}"
        add(loc, (page.updated_at or utcnow()).date(), "weekly", "0.8")

    for static in static_pages:
        add(f"{base_url}{static.path}", today, static.changefreq, static.priority)

    return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(urlset, encoding="unicode")


class SitemapService:
    def __init__(self, session: AsyncSession, cache: RedisClient | None = None, env: ENV | None = None):
        self.session = session
        self.cache = cache
        self.env = env or get_env()

    async def _pages(self) -> list[SeoPage]:
        try:
            return list((await self.session.execute(select(SeoPage).order_by(SeoPage.page_slug))).scalars().all())
        except SQLAlchemyError:
            logging.exception("Failed to load SEO pages for the sitemap")
            return []

    async def render(self) -> str:
        if self.cache is not None:
            try:
                cached = await self.cache.get_cached(CACHE_KEY)
                if cached:
                    return cached
            except Exception as e:
                logging.warning(f"Sitemap cache read failed: {e}")

        xml = build_sitemap(await self._pages(), STATIC_PAGES, self.env.BASE_URL)

        if self.cache is not None:
            try:
                await self.cache.set_cached(CACHE_KEY, xml, ttl=self.env.SITEMAP_CACHE_TTL)
            except Exception as e:
                logging.warning(f"Sitemap cache write failed: {e}")
        return xml
