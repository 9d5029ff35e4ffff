# backend/notion_site/notion/client.py

"""
Notion の非公式 API（notion.so/api/v3）との通信を担当するクライアントモジュール。

公開 API ではページの描画に必要な record map が取れないため、
Web アプリと同じ内部エンドポイントを叩いている。
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import NotionConfig, get_notion_config
from .ids import parse_page_id, uuid_to_id
from .record_map import (
    RECORD_MAP_TABLES,
    RecordMap,
    get_block_value,
    get_collection_id,
    get_page_content_block_ids,
    is_collection_view_block,
)

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_LIMIT = 999

_SIGNED_FILE_TYPES = ("pdf", "audio", "video", "file", "page")
_NOTION_FILE_HOSTS = ("secure.notion-static.com", "prod-files-secure")


class NotionClientError(RuntimeError):
    """Notion クライアント全般の例外。"""

    status_code: Optional[int] = None


class NotionAuthError(NotionClientError):
    """認証・権限関連のエラー。"""


class NotionNotFoundError(NotionClientError):
    """ページやブロックが存在しない（または公開されていない）場合のエラー。"""

    status_code = 404


class NotionRateLimitError(NotionClientError):
    """429 Too Many Requests。呼び出し側でリトライする。"""

    status_code = 429


class NotionAPIError(NotionClientError):
    """その他 Notion API 呼び出し時のエラー。"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotionClient:
    """
    Notion 非公式 API の薄いラッパークライアント。

    - loadPageChunk / syncRecordValues でページの record map を組み立てる
    - queryCollection でコレクション（データベース）の行を取得する
    - getSignedFileUrls で添付ファイルの署名付き URL を取得する
    - search でワークスペース内検索を行う
    """

    def __init__(self, config: Optional[NotionConfig] = None) -> None:
        self.config = config or get_notion_config()

    def _build_headers(self) -> Dict[str, str]:
        """
        非公式 API 呼び出しに必要なヘッダーを構築。
        """
        headers = {"Content-Type": "application/json"}
        if self.config.token_v2:
            headers["cookie"] = f"token_v2={self.config.token_v2}"
        if self.config.active_user:
            headers["x-notion-active-user-header"] = self.config.active_user
        return headers

    def _raise_for_status(self, response: httpx.Response) -> None:
        """
        HTTP レスポンスコードに応じて適切な例外を投げる。
        """
        if response.status_code in (401, 403):
            raise NotionAuthError(
                f"Notion API denied access ({response.status_code}). Check NOTION_TOKEN_V2."
            )
        if response.status_code == 404:
            raise NotionNotFoundError("Notion API error: 404 Not Found")
        if response.status_code == 429:
            raise NotionRateLimitError("Notion API error: 429 Too Many Requests")
        if response.status_code >= 400:
            raise NotionAPIError(
                f"Notion API error: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

    def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.config.api_base_url}/{endpoint}"

        try:
            response = httpx.post(
                url,
                headers=self._build_headers(),
                json=body,
                timeout=self.config.timeout_seconds,
            )
        except httpx.RequestError as exc:
            raise NotionClientError(f"Failed to call Notion API ({endpoint}): {exc}") from exc

        self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise NotionAPIError(f"Unexpected Notion API response from {endpoint}: not JSON") from exc

        if not isinstance(data, dict):
            raise NotionAPIError(f"Unexpected Notion API response from {endpoint}: not an object")

        return data

    # ------------------------------------------------------------------
    # 低レベル API
    # ------------------------------------------------------------------
    def load_page_chunk(
        self,
        page_id: str,
        *,
        chunk_number: int = 0,
        limit: int = 100,
        cursor: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """loadPageChunk を 1 回呼ぶ。返り値は {recordMap, cursor}。"""
        body = {
            "pageId": parse_page_id(page_id) or page_id,
            "limit": limit,
            "chunkNumber": chunk_number,
            "cursor": cursor or {"stack": []},
            "verticalColumns": False,
        }
        return self._post("loadPageChunk", body)

    def sync_record_values(self, record_ids: List[str], table: str = "block") -> RecordMap:
        """
        syncRecordValues で指定テーブルのレコードをまとめて取得する。
        """
        if not record_ids:
            return {table: {}}

        body = {
            "requests": [
                {"pointer": {"table": table, "id": record_id}, "version": -1}
                for record_id in record_ids
            ]
        }
        data = self._post("syncRecordValues", body)
        record_map = data.get("recordMap") or {}
        record_map.setdefault(table, {})
        return record_map

    def get_blocks(self, block_ids: List[str]) -> Dict[str, Any]:
        return self.sync_record_values(block_ids, table="block")["block"]

    def get_collection_view(self, collection_view_id: str) -> Optional[Dict[str, Any]]:
        """コレクションビュー 1 件の value を返す。見つからなければ None。"""
        views = self.sync_record_values([collection_view_id], table="collection_view")
        wrapper = views["collection_view"].get(collection_view_id) or {}
        return wrapper.get("value")

    def get_collection_data(
        self,
        collection_id: str,
        collection_view_id: str,
        collection_view: Optional[Dict[str, Any]] = None,
        *,
        limit: Optional[int] = None,
        search_query: str = "",
    ) -> Dict[str, Any]:
        """
        queryCollection でコレクションの行を取得する。

        返り値は Notion の生レスポンス:
          {"result": {"reducerResults": {"collection_group_results": {"blockIds": [...], ...}}},
           "recordMap": {...}}
        """
        query2 = (collection_view or {}).get("query2") or {}
        loader: Dict[str, Any] = {
            "type": "reducer",
            "reducers": {
                "collection_group_results": {
                    "type": "results",
                    "limit": limit if limit is not None else DEFAULT_COLLECTION_LIMIT,
                    "loadContentCover": True,
                }
            },
            "sort": query2.get("sort", []),
            "searchQuery": search_query,
            "userTimeZone": self.config.user_time_zone,
        }
        if query2.get("filter"):
            loader["filter"] = query2["filter"]

        body = {
            "collection": {"id": collection_id},
            "collectionView": {"id": collection_view_id},
            "loader": loader,
        }
        data = self._post("queryCollection", body)
        data.setdefault("recordMap", {})
        return data

    def get_signed_file_urls(self, urls: List[Dict[str, Any]]) -> List[str]:
        """getSignedFileUrls を呼び、署名付き URL の配列を返す。"""
        data = self._post("getSignedFileUrls", {"urls": urls})
        signed = data.get("signedUrls", [])
        if not isinstance(signed, list):
            raise NotionAPIError("Unexpected Notion API response format: 'signedUrls' is not a list.")
        return signed

    def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        ワークスペース内検索。params は {ancestorId, query, limit?, filters?}。
        """
        filters = {
            "isDeletedOnly": False,
            "isNavigableOnly": False,
            "excludeTemplates": True,
            "requireEditPermissions": False,
            "includePublicPagesWithoutExplicitAccess": True,
            "ancestors": [],
            "createdBy": [],
            "editedBy": [],
            "lastEditedTime": {},
            "createdTime": {},
            "inTeams": [],
        }
        filters.update(params.get("filters") or {})

        body = {
            "type": "BlocksInAncestor",
            "source": "quick_find_public",
            "ancestorId": parse_page_id(params.get("ancestorId")),
            "sort": {"field": "relevance"},
            "limit": params.get("limit") or 20,
            "query": params.get("query", ""),
            "filters": filters,
        }
        return self._post("search", body)

    # ------------------------------------------------------------------
    # 高レベル API
    # ------------------------------------------------------------------
    def get_page(
        self,
        page_id: str,
        *,
        chunk_limit: int = 100,
        chunk_number: int = 0,
        fetch_missing_blocks: bool = True,
        fetch_collections: bool = True,
        sign_file_urls: bool = True,
    ) -> RecordMap:
        """
        ページ 1 件分の record map を組み立てて返す。

        1. loadPageChunk でページ本体を取得
        2. content から参照されているのに未取得のブロックを syncRecordValues で補完
        3. ページ内のコレクションビューを queryCollection し collection_query に格納
        4. Notion がホストするファイルの署名付き URL を signed_urls に格納
        """
        page_uuid = parse_page_id(page_id) or page_id
        chunk = self.load_page_chunk(page_uuid, chunk_number=chunk_number, limit=chunk_limit)

        raw = chunk.get("recordMap") or {}
        if not raw.get("block"):
            raise NotionNotFoundError(f'Notion page not found "{uuid_to_id(page_uuid)}"')

        record_map: RecordMap = {table: dict(raw.get(table) or {}) for table in RECORD_MAP_TABLES}

        if fetch_missing_blocks:
            self._fetch_missing_blocks(record_map, page_uuid)

        content_block_ids = get_page_content_block_ids(record_map, page_uuid)

        if fetch_collections:
            self._fetch_collections(record_map, content_block_ids, page_uuid)

        if sign_file_urls:
            self._add_signed_urls(record_map, content_block_ids)

        return record_map

    def _fetch_missing_blocks(self, record_map: RecordMap, page_id: str) -> None:
        while True:
            pending = [
                block_id
                for block_id in get_page_content_block_ids(record_map, page_id)
                if block_id not in record_map["block"]
            ]
            if not pending:
                return

            new_blocks = self.get_blocks(pending)
            if not any(block_id in new_blocks for block_id in pending):
                # 取得できないブロック（削除済み・権限なし）は諦める
                logger.warning("Could not resolve %d missing block(s) for page %s", len(pending), page_id)
                return

            record_map["block"].update(new_blocks)

    def _fetch_collections(
        self,
        record_map: RecordMap,
        content_block_ids: List[str],
        page_id: str,
    ) -> None:
        instances = []
        for block_id in content_block_ids:
            block = get_block_value(record_map, block_id)
            if not is_collection_view_block(block):
                continue
            collection_id = get_collection_id(block)
            if not collection_id:
                continue
            for view_id in block.get("view_ids") or []:
                instances.append((collection_id, view_id))

        for collection_id, view_id in instances:
            view = (record_map["collection_view"].get(view_id) or {}).get("value")
            try:
                data = self.get_collection_data(collection_id, view_id, view)
            except NotionRateLimitError:
                raise
            except NotionClientError as exc:
                # 1 つのビューが壊れていてもページ全体は表示する
                logger.warning(
                    "Collection query failed for page %s (collection=%s view=%s): %s",
                    page_id,
                    collection_id,
                    view_id,
                    exc,
                )
                continue

            fetched = data.get("recordMap") or {}
            for table in ("block", "collection", "collection_view", "notion_user"):
                record_map[table].update(fetched.get(table) or {})

            reducer_results = (data.get("result") or {}).get("reducerResults")
            record_map["collection_query"].setdefault(collection_id, {})[view_id] = reducer_results

    def _add_signed_urls(self, record_map: RecordMap, content_block_ids: List[str]) -> None:
        files = []
        for block_id in content_block_ids:
            block = get_block_value(record_map, block_id)
            if not block:
                continue

            block_type = block.get("type")
            uploaded_image = block_type == "image" and bool(block.get("file_ids"))
            if block_type not in _SIGNED_FILE_TYPES and not uploaded_image:
                continue

            if block_type == "page":
                source = (block.get("format") or {}).get("page_cover")
            else:
                try:
                    source = block["properties"]["source"][0][0]
                except (KeyError, IndexError, TypeError):
                    source = None

            if not source or not any(host in source for host in _NOTION_FILE_HOSTS):
                continue

            files.append(
                {
                    "permissionRecord": {"table": "block", "id": block.get("id", block_id)},
                    "url": source,
                }
            )

        if not files:
            return

        try:
            signed_urls = self.get_signed_file_urls(files)
        except NotionRateLimitError:
            raise
        except NotionClientError as exc:
            logger.warning("getSignedFileUrls failed: %s", exc)
            return

        if len(signed_urls) != len(files):
            logger.warning(
                "getSignedFileUrls returned %d url(s) for %d file(s); ignoring",
                len(signed_urls),
                len(files),
            )
            return

        for file_info, signed_url in zip(files, signed_urls):
            record_map["signed_urls"][file_info["permissionRecord"]["id"]] = signed_url
