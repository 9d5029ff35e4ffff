# backend/notion_site/notion/schemas.py

"""
ページネーション / load-more / 検索で使う Pydantic スキーマ定義。

ブラウザ側の JavaScript とやり取りする JSON は camelCase（hasMore, nextCursor など）
なので、フィールドには alias を付けている。
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaginationOptions(BaseModel):
    """
    コレクションのページ分割指定。

    cursor は「何件目から表示するか」を表す 0 始まりのオフセット文字列。
    """

    model_config = ConfigDict(populate_by_name=True)

    cursor: Optional[str] = Field(None, description="表示開始位置（オフセット）")
    page_size: int = Field(10, ge=1, alias="pageSize", description="1 ページあたりの件数")
    load_all: bool = Field(False, alias="loadAll", description="True の場合は全件表示")


class PaginationMeta(BaseModel):
    """
    ページ分割の結果。サーバーレンダリング / load-more の両方で同じ意味を持つ。
    """

    model_config = ConfigDict(populate_by_name=True)

    has_more: bool = Field(False, alias="hasMore")
    next_cursor: Optional[str] = Field(None, alias="nextCursor")
    current_page: int = Field(1, ge=1, alias="currentPage")
    has_previous: bool = Field(False, alias="hasPrevious")


class CollectionPageData(BaseModel):
    """
    load-more で返すコレクション 1 ページ分のデータ。
    """

    model_config = ConfigDict(populate_by_name=True)

    collection_id: str = Field(..., alias="collectionId")
    collection_view_id: str = Field(..., alias="collectionViewId")
    block_ids: List[str] = Field(default_factory=list, alias="blockIds")
    total: int = Field(0, description="このページに含まれる件数")
    record_map: Dict[str, Any] = Field(
        default_factory=dict,
        alias="recordMap",
        description="blockIds に対応するブロック等を含む record map",
    )


class LoadMoreResponse(BaseModel):
    """
    /api/load-more のレスポンス全体。
    """

    model_config = ConfigDict(populate_by_name=True)

    data: CollectionPageData
    has_more: bool = Field(False, alias="hasMore")
    next_cursor: Optional[str] = Field(None, alias="nextCursor")


class SearchRequest(BaseModel):
    """
    /api/search-notion のリクエストボディ。
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., description="検索文字列")
    ancestor_id: Optional[str] = Field(
        None,
        alias="ancestorId",
        description="検索対象のルートページ ID。未指定ならサイトのルートページ。",
    )
    limit: int = Field(20, ge=1, le=100)
    filters: Dict[str, Any] = Field(default_factory=dict)
