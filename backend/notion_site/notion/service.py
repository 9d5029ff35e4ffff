# backend/notion_site/notion/service.py

"""
NotionClient と公開サイト向けの後処理をつなぐサービス層。

- 429 を受けたときの指数バックオフ付きリトライ
- リンク切れ画像の差し替え
- カスタムナビゲーションのリンク先ページの record map へのマージ
- ツイート埋め込みデータの取得
- コレクションのページ分割（サーバーレンダリング / load-more）
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from notion_site.site.config import SiteConfig, get_site_config

from .client import NotionClient, NotionRateLimitError
from .config import NotionConfig, get_notion_config
from .ids import uuid_to_id
from .images import replace_dead_image_links
from .pagination import paginate_block_ids, paginate_record_map, parse_cursor
from .record_map import RecordMap, merge_record_maps
from .schemas import CollectionPageData, LoadMoreResponse, PaginationMeta, PaginationOptions
from .tweets import TweetClient, get_tweets_map

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_rate_limit_error(exc: BaseException) -> bool:
    """
    例外がレート制限（429）によるものかを判定する。

    NotionRateLimitError 以外にも、status_code やメッセージに 429 を含むものを対象にする。
    """
    if isinstance(exc, NotionRateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc)
    return "429" in message or "Too Many Requests" in message


class NotionPageService:
    """
    公開サイトが使う Notion ページ取得の窓口。
    """

    def __init__(
        self,
        client: Optional[NotionClient] = None,
        *,
        site_config: Optional[SiteConfig] = None,
        notion_config: Optional[NotionConfig] = None,
        tweet_client: Optional[TweetClient] = None,
    ) -> None:
        self.notion_config = notion_config or get_notion_config()
        self.client = client or NotionClient(self.notion_config)
        self.site_config = site_config or get_site_config()
        self.tweet_client = tweet_client or TweetClient()
        self._navigation_link_pages: Optional[List[RecordMap]] = None

    # ------------------------------------------------------------------
    # リトライ
    # ------------------------------------------------------------------
    def _retrying(self, label: str) -> Retrying:
        max_attempts = self.notion_config.max_retries

        def _log_retry(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                "Rate limited for %s, retrying in %dms... (%d retries left)",
                label,
                int(delay * 1000),
                max_attempts - retry_state.attempt_number,
            )

        return Retrying(
            retry=retry_if_exception(is_rate_limit_error),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(
                multiplier=self.notion_config.retry_backoff_seconds,
                max=self.notion_config.retry_backoff_max_seconds,
            ),
            before_sleep=_log_retry,
            reraise=True,
        )

    def call_with_retry(self, label: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """func をレート制限時のみリトライしながら呼ぶ。それ以外の例外は即座に送出。"""
        return self._retrying(label)(func, *args, **kwargs)

    def fetch_page(self, page_id: str, **options: Any) -> RecordMap:
        """後処理なしで record map を取得する（リトライ付き）。"""
        return self.call_with_retry(
            f"page {uuid_to_id(page_id)}",
            self.client.get_page,
            page_id,
            **options,
        )

    # ------------------------------------------------------------------
    # ページ取得
    # ------------------------------------------------------------------
    def get_navigation_link_pages(self) -> List[RecordMap]:
        """
        カスタムナビゲーションのリンク先ページを取得する。

        タイトルやスラッグが分かれば十分なので、最小限の取得オプションで 1 件ずつ読む。
        成功した結果はインスタンスにキャッシュする。
        """
        if self._navigation_link_pages is not None:
            return self._navigation_link_pages

        page_ids = [link.page_id for link in self.site_config.navigation_links if link.page_id]
        if self.site_config.navigation_style == "default" or not page_ids:
            self._navigation_link_pages = []
            return self._navigation_link_pages

        pages = [
            self.fetch_page(
                page_id,
                chunk_limit=1,
                fetch_missing_blocks=False,
                fetch_collections=False,
                sign_file_urls=False,
            )
            for page_id in page_ids
        ]
        self._navigation_link_pages = pages
        return pages

    def get_page(self, page_id: str) -> RecordMap:
        """
        ページの record map を取得し、公開サイト向けの後処理を施して返す。
        """
        record_map = self.fetch_page(page_id)

        record_map = replace_dead_image_links(
            record_map,
            self.site_config.default_fallback_image,
            timeout=self.notion_config.image_check_timeout_seconds,
            concurrency=self.notion_config.image_check_concurrency,
        )

        if self.site_config.navigation_style != "default":
            # ナビゲーションに出すページのタイトル・スラッグを解決できるようにする
            for navigation_record_map in self.get_navigation_link_pages():
                record_map = merge_record_maps(record_map, navigation_record_map)

        get_tweets_map(
            record_map,
            client=self.tweet_client,
            concurrency=self.notion_config.tweet_fetch_concurrency,
        )

        return record_map

    def get_page_with_pagination(
        self,
        page_id: str,
        options: Optional[PaginationOptions] = None,
    ) -> Tuple[RecordMap, Optional[PaginationMeta]]:
        """
        get_page の結果にページ分割を適用する。

        options が None の場合はページ分割せず、メタ情報も None を返す。
        """
        record_map = self.get_page(page_id)

        if options is None:
            return record_map, None

        return paginate_record_map(record_map, options)

    # ------------------------------------------------------------------
    # load-more
    # ------------------------------------------------------------------
    def get_collection_data_paginated(
        self,
        collection_id: str,
        collection_view_id: str,
        collection_view: Optional[Dict[str, Any]] = None,
        *,
        limit: int = 10,
        cursor: Optional[str] = None,
        load_all: bool = False,
    ) -> LoadMoreResponse:
        """
        コレクションの 1 ページ分を取得する（/api/load-more 用）。

        Notion の queryCollection にはオフセット指定が無いため、
        cursor + limit + 1 件を取得してからサーバー側と同じ規則でスライスする。
        collection_view が未指定なら取得して、ページ描画時と同じ並び順・フィルタにそろえる。
        """
        if collection_view is None:
            collection_view = self.call_with_retry(
                f"collection view {collection_view_id}",
                self.client.get_collection_view,
                collection_view_id,
            )

        query_limit = None if load_all else parse_cursor(cursor) + limit + 1

        data = self.call_with_retry(
            f"collection {collection_id}",
            self.client.get_collection_data,
            collection_id,
            collection_view_id,
            collection_view,
            limit=query_limit,
        )

        reducer_results = (data.get("result") or {}).get("reducerResults") or {}
        group = reducer_results.get("collection_group_results") or {}
        all_block_ids: List[str] = list(group.get("blockIds") or [])

        if load_all:
            block_ids, has_more, next_cursor = all_block_ids, False, None
        else:
            block_ids, has_more, next_cursor = paginate_block_ids(all_block_ids, cursor, limit)

        fetched: RecordMap = data.get("recordMap") or {}
        visible = set(block_ids)
        record_map: RecordMap = {
            "block": {
                block_id: wrapper
                for block_id, wrapper in (fetched.get("block") or {}).items()
                if block_id in visible
            },
            "collection": fetched.get("collection") or {},
            "collection_view": fetched.get("collection_view") or {},
            "notion_user": fetched.get("notion_user") or {},
        }

        return LoadMoreResponse(
            data=CollectionPageData(
                collection_id=collection_id,
                collection_view_id=collection_view_id,
                block_ids=block_ids,
                total=len(block_ids),
                record_map=record_map,
            ),
            has_more=has_more,
            next_cursor=next_cursor,
        )

    def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """検索は Notion 側に委譲する。"""
        return self.call_with_retry("search", self.client.search, params)
