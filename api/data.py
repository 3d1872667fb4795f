"""
Integration data proxy — paginated PageSpeed / GA4 / Search Console rows
for the calling user.

Route prefix: /api
"""

from __future__ import annotations

import logging
from typing import Any, Dict, NamedTuple, Type

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session, require_user_id
from config.settings import config
from database.helpers import fetch_page, total_pages
from database.models import Base, GAData, GSCData, PageSpeedData

logger = logging.getLogger(__name__)

router = APIRouter(tags=["data"])


class DataSource(NamedTuple):
    model: Type[Base]
    label: str


DATA_SOURCES: Dict[str, DataSource] = {
    "pagespeed": DataSource(PageSpeedData, "PageSpeed"),
    "ga": DataSource(GAData, "Google Analytics"),
    "gsc": DataSource(GSCData, "Search Console"),
}


@router.get("/data/{source}")
async def get_integration_data(
    source: str,
    page: int = Query(1),
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """
    One page of the user's rows, newest first.

    Returns ``{data, totalCount, totalPages, currentPage}``.
    """
    data_source = DATA_SOURCES.get(source)
    if data_source is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown data source '{source}'")
    if page < 1:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Page must be 1 or greater")

    page_size = config.page_size
    try:
        rows, count = await fetch_page(session, data_source.model, user_id, page, page_size)
    except SQLAlchemyError as exc:
        logger.error("%s data error for user %s: %s", data_source.label, user_id, exc)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to fetch {data_source.label} data",
        )

    return {
        "data": rows,
        "totalCount": count,
        "totalPages": total_pages(count, page_size),
        "currentPage": page,
    }
