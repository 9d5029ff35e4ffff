# backend/notion_site/site/site_map.py

"""
サイトマップ（公開ページ一覧と URL スラッグの対応表）の構築。

ルートページから子ページ・コレクションのアイテムを辿り、
同じワークスペース（space）内のページだけを集める。
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from notion_site.notion.ids import uuid_to_id
from notion_site.notion.record_map import (
    PAGE_TYPES,
    RecordMap,
    get_block_value,
    get_canonical_page_id,
    get_page_property,
)
from notion_site.notion.service import NotionPageService

from .config import SiteConfig

logger = logging.getLogger(__name__)


@dataclass
class SiteMap:
    """サイト全体のページ一覧。"""

    site: SiteConfig
    page_map: Dict[str, RecordMap] = field(default_factory=dict)
    canonical_page_map: Dict[str, str] = field(default_factory=dict)


def _in_space(block: Optional[Dict[str, Any]], root_space_id: Optional[str]) -> bool:
    """別ワークスペースのブロックなら False。space_id が不明なものは同じ空間とみなす。"""
    if not root_space_id or not block:
        return True
    space_id = block.get("space_id")
    return not space_id or space_id == root_space_id


def _collection_item_ids(record_map: RecordMap, root_space_id: Optional[str] = None) -> List[str]:
    item_ids: List[str] = []
    for views in (record_map.get("collection_query") or {}).values():
        for query_result in (views or {}).values():
            if not isinstance(query_result, dict):
                continue
            group = query_result.get("collection_group_results") or {}
            for item_id in group.get("blockIds") or query_result.get("blockIds") or []:
                if _in_space(get_block_value(record_map, item_id), root_space_id):
                    item_ids.append(item_id)
    return item_ids


def _sub_page_ids(record_map: RecordMap, root_space_id: Optional[str] = None) -> List[str]:
    sub_page_ids: List[str] = []
    for block_id in (record_map.get("block") or {}):
        block = get_block_value(record_map, block_id)
        if not block or block.get("alive") is False:
            continue
        if block.get("type") in PAGE_TYPES and _in_space(block, root_space_id):
            sub_page_ids.append(block_id)
    return sub_page_ids

class SiteMapService:
    """
    サイトマップを構築・キャッシュするサービス。

    クロールは遅いので (root_page_id, root_space_id) ごとに結果をキャッシュする。
    """

    def __init__(
        self,
        page_service: NotionPageService,
        *,
        site_config: Optional[SiteConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.page_service = page_service
        self.site_config = site_config or page_service.site_config
        self._sleep = sleep
        self._cache: Dict[Tuple[str, Optional[str]], SiteMap] = {}

    def get_site_map(self) -> SiteMap:
        key = (self.site_config.root_notion_page_id, self.site_config.root_notion_space_id)
        if key not in self._cache:
            self._cache[key] = self._build_site_map(*key)
        return self._cache[key]

    def clear_cache(self) -> None:
        self._cache.clear()

    def _fetch_page(self, page_id: str) -> RecordMap:
        logger.info("notion getPage %s", uuid_to_id(page_id))
        # レート制限を避けるために 1 ページごとに待つ
        if self.site_config.site_map_crawl_delay_seconds:
            self._sleep(self.site_config.site_map_crawl_delay_seconds)
        return self.page_service.fetch_page(page_id)

    def crawl(self, root_page_id: str, root_space_id: Optional[str] = None) -> Dict[str, RecordMap]:
        """
        ルートページから到達できるページの record map を集める。
        """
        page_map: Dict[str, RecordMap] = {}
        visited: Set[str] = set()
        queue: Deque[str] = deque([root_page_id])

        while queue:
            page_id = queue.popleft()
            if page_id in visited:
                continue
            visited.add(page_id)

            record_map = self._fetch_page(page_id)
            page_map[page_id] = record_map

            candidates = _sub_page_ids(record_map, root_space_id) + _collection_item_ids(
                record_map, root_space_id
            )
            for sub_page_id in candidates:
                if sub_page_id not in visited:
                    queue.append(sub_page_id)

        return page_map

    def _build_site_map(self, root_page_id: str, root_space_id: Optional[str]) -> SiteMap:
        page_map = self.crawl(root_page_id, root_space_id)
        canonical_page_map: Dict[str, str] = {}

        for page_id, record_map in page_map.items():
            block = get_block_value(record_map, page_id)

            is_public = get_page_property("Public", block, record_map)
            if is_public is False:
                continue

            canonical_page_id = get_canonical_page_id(
                page_id,
                record_map,
                uuid=self.site_config.include_notion_id_in_urls,
            )
            if not canonical_page_id:
                continue

            if canonical_page_id in canonical_page_map:
                # 別々のコレクションに同じタイトルのページがあるとぶつかる
                logger.warning(
                    "error duplicate canonical page id %s (page=%s existing=%s)",
                    canonical_page_id,
                    page_id,
                    canonical_page_map[canonical_page_id],
                )
                continue

            canonical_page_map[canonical_page_id] = page_id

        return SiteMap(
            site=self.site_config,
            page_map=page_map,
            canonical_page_map=canonical_page_map,
        )
