# backend/notion_site/notion/pagination.py

"""
取得済み record map に対するコレクションのページ分割。

- collection_query の各ビューの blockIds をスライスする
- 表示しないコレクションアイテムを block テーブルから取り除く
- PaginationMeta（現在ページ・続きの有無・次カーソル）を計算する

cursor は 0 始まりのオフセット。サーバーレンダリング（/?cursor=）と
/api/load-more は同じ paginate_block_ids を通るので、同じ cursor なら同じ行が返る。
"""

import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple

from .record_map import COLLECTION_VIEW_TYPES, RecordMap
from .schemas import PaginationMeta, PaginationOptions

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_cursor(cursor: Optional[str]) -> int:
    """
    cursor 文字列をオフセットに変換する。

    先頭の整数部分だけを読む（"20abc" -> 20）。
    未指定・数値でない・負数の場合は 0。
    """
    if cursor is None:
        return 0

    match = _LEADING_INT_RE.match(str(cursor))
    if not match:
        return 0

    return max(0, int(match.group(1)))


def compute_current_page(cursor: Optional[str], page_size: int) -> int:
    """cursor から 1 始まりのページ番号を計算する。"""
    if not cursor:
        return 1
    return parse_cursor(cursor) // max(1, page_size) + 1


def cursor_for_page(page: int, page_size: int) -> str:
    """ページ番号（1 始まり）から cursor を作る。compute_current_page の逆。"""
    return str((max(1, page) - 1) * max(1, page_size))


def paginate_block_ids(
    block_ids: List[str],
    cursor: Optional[str],
    page_size: int,
) -> Tuple[List[str], bool, Optional[str]]:
    """
    blockIds を 1 ページ分に切り出す。

    :return: (このページの blockIds, 続きがあるか, 次の cursor)
    """
    start = parse_cursor(cursor)
    end = start + max(1, page_size)

    page_ids = list(block_ids[start:end])
    has_more = end < len(block_ids)
    next_cursor = str(end) if has_more else None

    return page_ids, has_more, next_cursor


def _is_hidden_collection_item(
    block_id: str,
    wrapper: Any,
    blocks: Dict[str, Any],
    visible_ids: Set[str],
) -> bool:
    value = wrapper.get("value") if isinstance(wrapper, dict) else None
    if not isinstance(value, dict):
        return False

    parent_id = value.get("parent_id")
    if not parent_id or value.get("type") == "page" or block_id in visible_ids:
        return False

    parent = (blocks.get(parent_id) or {}).get("value") or {}
    return parent.get("type") in COLLECTION_VIEW_TYPES


def paginate_record_map(
    record_map: RecordMap,
    options: PaginationOptions,
) -> Tuple[RecordMap, PaginationMeta]:
    """
    record map のコレクションをページ分割する。

    入力の record map は書き換えず、新しい record map を返す。
    load_all の場合は record map をそのまま返す。
    """
    if options.load_all:
        return record_map, PaginationMeta(
            has_more=False,
            next_cursor=None,
            current_page=1,
            has_previous=False,
        )

    start = parse_cursor(options.cursor)
    page_size = options.page_size

    paginated: RecordMap = dict(record_map)
    collection_query: Dict[str, Any] = {}
    visible_ids: Set[str] = set()
    has_more = False
    next_cursor: Optional[str] = None
    paginated_views = 0

    for collection_id, views in (record_map.get("collection_query") or {}).items():
        new_views: Dict[str, Any] = {}
        for view_id, query_result in (views or {}).items():
            group = (
                query_result.get("collection_group_results")
                if isinstance(query_result, dict)
                else None
            )
            if not isinstance(group, dict) or group.get("blockIds") is None:
                new_views[view_id] = query_result
                continue

            total_items = len(group["blockIds"])
            page_ids, view_has_more, view_next_cursor = paginate_block_ids(
                group["blockIds"], options.cursor, page_size
            )

            logger.debug(
                "Paginating collection %s view %s: start=%d page_size=%d total=%d shown=%d",
                collection_id,
                view_id,
                start,
                page_size,
                total_items,
                len(page_ids),
            )

            new_views[view_id] = {
                **query_result,
                "collection_group_results": {
                    **group,
                    "blockIds": page_ids,
                    "total": len(page_ids),
                    "hasMore": view_has_more,
                },
            }
            visible_ids.update(page_ids)
            paginated_views += 1
            if view_has_more:
                has_more = True
                next_cursor = view_next_cursor

        collection_query[collection_id] = new_views

    if "collection_query" in record_map:
        paginated["collection_query"] = collection_query

    blocks = record_map.get("block")
    if paginated_views and blocks:
        paginated["block"] = {
            block_id: wrapper
            for block_id, wrapper in blocks.items()
            if not _is_hidden_collection_item(block_id, wrapper, blocks, visible_ids)
        }
        logger.debug(
            "Pruned %d collection item block(s)",
            len(blocks) - len(paginated["block"]),
        )

    meta = PaginationMeta(
        has_more=has_more,
        next_cursor=next_cursor,
        current_page=compute_current_page(options.cursor, page_size),
        has_previous=start > 0,
    )
    return paginated, meta
