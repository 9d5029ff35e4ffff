# backend/notion_site/site/router.py

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, Response

from notion_site.notion.client import NotionNotFoundError
from notion_site.notion.pagination import cursor_for_page, parse_cursor
from notion_site.notion.router import get_page_service
from notion_site.notion.schemas import PaginationOptions
from notion_site.notion.service import NotionPageService

from .render import render_page, render_sitemap
from .resolver import PageNotFoundError, ResolvedPage, resolve_notion_page
from .site_map import SiteMapService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["site"])


@lru_cache()
def get_site_map_service() -> SiteMapService:
    """SiteMapService のシングルトン。クロール結果をプロセス内でキャッシュする。"""
    return SiteMapService(get_page_service())


def _resolve(
    page_service: NotionPageService,
    site_map_service: SiteMapService,
    raw_page_id: Optional[str],
    options: Optional[PaginationOptions] = None,
) -> ResolvedPage:
    """
    ページ解決の例外を HTTP エラーに変換する。
    """
    try:
        return resolve_notion_page(page_service, site_map_service, raw_page_id, options)
    except (PageNotFoundError, NotionNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("page error %s %s", page_service.site_config.domain, raw_page_id or "/")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load page from Notion.",
        ) from exc


@router.get("/", response_class=HTMLResponse, summary="ルートページ（ページ分割あり）")
def index(
    cursor: Optional[str] = Query(None, description="表示開始位置（オフセット）"),
    page: Optional[str] = Query(None, description="1 始まりのページ番号。cursor が優先"),
    load_all: Optional[str] = Query(None, alias="loadAll"),
    page_service: NotionPageService = Depends(get_page_service),
    site_map_service: SiteMapService = Depends(get_site_map_service),
) -> HTMLResponse:
    """
    ルートページを描画する。

    ページ分割は常に有効。?loadAll=true で全件表示。
    """
    page_size = page_service.site_config.page_size
    if cursor is None and page is not None:
        # 数値でない・0 以下のページ番号は 1 ページ目として扱う
        cursor = cursor_for_page(parse_cursor(page), page_size)

    options = PaginationOptions(
        cursor=cursor,
        page_size=page_size,
        load_all=load_all == "true",
    )
    resolved = _resolve(page_service, site_map_service, None, options)
    return HTMLResponse(render_page(resolved))


@router.get("/sitemap.xml", summary="sitemap.xml")
def sitemap(
    site_map_service: SiteMapService = Depends(get_site_map_service),
) -> Response:
    try:
        site_map = site_map_service.get_site_map()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to build site map")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build site map.",
        ) from exc

    return Response(
        content=render_sitemap(site_map.site, site_map.canonical_page_map),
        media_type="application/xml",
    )


@router.get("/{page_slug}", response_class=HTMLResponse, summary="スラッグまたはページ ID でページを表示")
def notion_page(
    page_slug: str,
    page_service: NotionPageService = Depends(get_page_service),
    site_map_service: SiteMapService = Depends(get_site_map_service),
) -> HTMLResponse:
    resolved = _resolve(page_service, site_map_service, page_slug)
    return HTMLResponse(render_page(resolved))
