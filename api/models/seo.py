from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from utils.clock import utcnow
from .base import Base


class SeoPage(Base):
    __tablename__ = "seo_pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    canonical_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    no_index: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
