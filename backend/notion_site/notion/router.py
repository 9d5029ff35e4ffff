# backend/notion_site/notion/router.py

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from notion_site.notion.schemas import LoadMoreResponse, SearchRequest
from notion_site.notion.service import NotionPageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notion"])


@lru_cache()
def get_page_service() -> NotionPageService:
    """
    NotionPageService のシングルトンインスタンスを取得する。

    テストでは FastAPI の dependency_overrides で差し替える。
    """
    return NotionPageService()


@router.get(
    "/load-more",
    response_model=LoadMoreResponse,
    summary="コレクションの続きを取得",
    description="cursor 以降のコレクションアイテムを 1 ページ分（SITE_PAGE_SIZE 件）返す。",
)
def load_more(
    page_id: Optional[str] = Query(None, alias="pageId"),
    cursor: Optional[str] = Query(None),
    collection_id: Optional[str] = Query(None, alias="collectionId"),
    collection_view_id: Optional[str] = Query(None, alias="collectionViewId"),
    service: NotionPageService = Depends(get_page_service),
) -> LoadMoreResponse:
    """
    クライアント側の「Load More」ボタンから呼ばれるエンドポイント。

    - 必須パラメータ不足 → 400 Bad Request
    - Notion 呼び出し失敗など → 500 Internal Server Error
    """
    if not page_id or not collection_id or not collection_view_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters: pageId, collectionId, collectionViewId",
        )

    try:
        return service.get_collection_data_paginated(
            collection_id,
            collection_view_id,
            None,
            cursor=cursor,
            limit=service.site_config.page_size,
            load_all=False,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error in load-more API (page=%s collection=%s)", page_id, collection_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load more content",
        ) from exc


@router.post(
    "/search-notion",
    summary="Notion ワークスペース内検索",
)
def search_notion(
    body: SearchRequest,
    response: Response,
    service: NotionPageService = Depends(get_page_service),
) -> Dict[str, Any]:
    """
    検索は Notion の search エンドポイントにそのまま委譲する。
    """
    params = {
        "ancestorId": body.ancestor_id or service.site_config.root_notion_page_id,
        "query": body.query,
        "limit": body.limit,
        "filters": body.filters,
    }

    try:
        results = service.search(params)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error in search-notion API (query=%r)", body.query)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search Notion",
        ) from exc

    response.headers["Cache-Control"] = "public, s-maxage=60, max-age=60, stale-while-revalidate=60"
    return results
