# backend/notion_site/notion/images.py

"""
リンク切れ画像の差し替え。

image ブロックの source に HEAD リクエストを送り、到達できないものは
DEFAULT_FALLBACK_IMAGE に置き換える。
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .record_map import RecordMap, get_block_value

logger = logging.getLogger(__name__)


def _image_source(block: Dict[str, Any]) -> Optional[str]:
    try:
        source = block["properties"]["source"][0][0]
    except (KeyError, IndexError, TypeError):
        return None
    return source if isinstance(source, str) and source else None


def check_image_url(url: str, *, timeout: float = 5.0) -> Optional[str]:
    """
    画像 URL が生きているか HEAD リクエストで確認する。

    :return: 生きていれば None、死んでいればその理由
    """
    try:
        response = httpx.head(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        return str(exc) or exc.__class__.__name__

    if not response.is_success:
        return f"HTTP {response.status_code}"
    return None


def replace_dead_image_links(
    record_map: RecordMap,
    fallback_image: Optional[str],
    *,
    timeout: float = 5.0,
    concurrency: int = 1,
) -> RecordMap:
    """
    リンク切れの image ブロックをフォールバック画像に差し替える。

    record map はその場で書き換えて、そのまま返す。
    block テーブルが無い場合・フォールバック画像が未設定の場合は何もしない。
    caption は保持する。
    """
    if not record_map or not record_map.get("block") or not fallback_image:
        return record_map

    targets: List[Tuple[str, Dict[str, Any], str]] = []
    for block_id in list(record_map["block"].keys()):
        block = get_block_value(record_map, block_id)
        if not block or block.get("type") != "image":
            continue
        source = _image_source(block)
        if source:
            targets.append((block_id, block, source))

    if not targets:
        return record_map

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
        reasons = list(
            executor.map(lambda target: check_image_url(target[2], timeout=timeout), targets)
        )

    for (block_id, block, source), reason in zip(targets, reasons):
        if reason is None:
            continue

        logger.warning(
            "Dead image link detected: %s for block %s. Replacing with fallback. Error: %s",
            source,
            block.get("id", block_id),
            reason,
        )
        caption = (block.get("properties") or {}).get("caption")
        block["properties"] = {"source": [[fallback_image]]}
        if caption:
            block["properties"]["caption"] = caption

    return record_map
