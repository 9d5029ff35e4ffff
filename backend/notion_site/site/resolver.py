# backend/notion_site/site/resolver.py

"""
URL パス → 表示する Notion ページの解決。
"""

from dataclasses import dataclass
from typing import Optional

from notion_site.notion.ids import parse_page_id
from notion_site.notion.record_map import RecordMap
from notion_site.notion.schemas import PaginationMeta, PaginationOptions
from notion_site.notion.service import NotionPageService

from .config import SiteConfig
from .site_map import SiteMapService


class PageNotFoundError(LookupError):
    """パスに対応するページが見つからない場合の例外。"""

    def __init__(self, raw_page_id: str) -> None:
        super().__init__(f'Not found "{raw_page_id}"')
        self.raw_page_id = raw_page_id


@dataclass
class ResolvedPage:
    """描画に必要な情報一式。"""

    site: SiteConfig
    page_id: str
    record_map: RecordMap
    pagination_meta: Optional[PaginationMeta] = None


def resolve_notion_page(
    page_service: NotionPageService,
    site_map_service: SiteMapService,
    raw_page_id: Optional[str] = None,
    pagination_options: Optional[PaginationOptions] = None,
) -> ResolvedPage:
    """
    パスに対応するページを取得する。

    - raw_page_id が無い / "index" の場合はルートページ（ページ分割あり）
    - パスにページ ID が含まれていればそれを使う
    - それ以外はサイトマップのスラッグ対応表から引く
    """
    site = page_service.site_config

    if not raw_page_id or raw_page_id == "index":
        record_map, meta = page_service.get_page_with_pagination(
            site.root_notion_page_id,
            pagination_options,
        )
        return ResolvedPage(
            site=site,
            page_id=site.root_notion_page_id,
            record_map=record_map,
            pagination_meta=meta,
        )

    page_id = parse_page_id(raw_page_id)
    if not page_id:
        site_map = site_map_service.get_site_map()
        page_id = site_map.canonical_page_map.get(raw_page_id)

    if not page_id:
        raise PageNotFoundError(raw_page_id)

    return ResolvedPage(
        site=site,
        page_id=page_id,
        record_map=page_service.get_page(page_id),
    )
