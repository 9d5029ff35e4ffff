# backend/notion_site/notion/record_map.py

"""
Notion の record map（block / collection / collection_view / collection_query
などのテーブルを束ねた辞書）を読むためのヘルパー群。

record map の形は Notion 側が決めるものなので、ここでは「読む」「軽く書き換える」
以上のことはしない。キーが欠けていても落ちないように寛容に実装している。
"""

from typing import Any, Dict, List, Optional, Set

from .ids import normalize_title, parse_page_id

RecordMap = Dict[str, Any]

RECORD_MAP_TABLES = (
    "block",
    "collection",
    "collection_view",
    "notion_user",
    "collection_query",
    "signed_urls",
)

COLLECTION_VIEW_TYPES = ("collection_view", "collection_view_page")
PAGE_TYPES = ("page", "collection_view_page")


def empty_record_map() -> RecordMap:
    """全テーブルが空の record map を返す。"""
    return {table: {} for table in RECORD_MAP_TABLES}


def get_block_value(record_map: RecordMap, block_id: str) -> Optional[Dict[str, Any]]:
    """block テーブルから value を取り出す。無ければ None。"""
    wrapper = (record_map.get("block") or {}).get(block_id)
    if not isinstance(wrapper, dict):
        return None
    value = wrapper.get("value")
    return value if isinstance(value, dict) else None


def get_text_content(rich_text: Any) -> str:
    """
    Notion の rich text（[[text, decorations], ...]）からプレーンテキストを抽出する。
    """
    if not isinstance(rich_text, list):
        return ""

    parts: List[str] = []
    for segment in rich_text:
        if isinstance(segment, list) and segment and isinstance(segment[0], str):
            parts.append(segment[0])
    return "".join(parts)


def get_collection_id(block: Dict[str, Any]) -> Optional[str]:
    """
    コレクションビューブロックが指すコレクション ID を返す。

    古いブロックは collection_id、新しいブロックは format.collection_pointer を持つ。
    """
    collection_id = block.get("collection_id")
    if collection_id:
        return collection_id

    pointer = (block.get("format") or {}).get("collection_pointer") or {}
    return pointer.get("id")


def is_collection_view_block(block: Optional[Dict[str, Any]]) -> bool:
    return bool(block) and block.get("type") in COLLECTION_VIEW_TYPES


def get_block_title(block: Optional[Dict[str, Any]], record_map: RecordMap) -> str:
    """
    ブロックのタイトルを返す。

    - title プロパティがあればそれを使う
    - コレクションビューの場合はコレクション名を使う
    """
    if not block:
        return ""

    properties = block.get("properties") or {}
    if properties.get("title"):
        return get_text_content(properties["title"])

    if is_collection_view_block(block):
        collection_id = get_collection_id(block)
        if collection_id:
            collection = ((record_map.get("collection") or {}).get(collection_id) or {}).get("value")
            if collection:
                return get_text_content(collection.get("name"))

    return ""


def get_page_property(
    property_name: str,
    block: Optional[Dict[str, Any]],
    record_map: RecordMap,
) -> Any:
    """
    コレクションアイテム（データベースの行ページ）のプロパティ値を名前で取得する。

    プロパティ名は大文字小文字を区別しない。型ごとの変換:
      - checkbox -> bool
      - number -> float（パース不能なら None）
      - select / multi_select -> list[str]
      - date -> start_date 文字列
      - created_time / last_edited_time -> ブロックのタイムスタンプ
      - その他 -> テキスト

    コレクション配下にないブロックや、スキーマに無いプロパティは None。
    """
    if not block or not block.get("properties") or not record_map.get("collection"):
        return None

    collection = (record_map["collection"].get(block.get("parent_id")) or {}).get("value")
    if not collection:
        return None

    schema: Dict[str, Any] = collection.get("schema") or {}
    name_lower = property_name.lower()
    property_id = next(
        (
            key
            for key, prop in schema.items()
            if isinstance(prop, dict) and (prop.get("name") or "").lower() == name_lower
        ),
        None,
    )
    if property_id is None:
        return None

    prop_type = schema[property_id].get("type")
    raw = block["properties"].get(property_id)
    content = get_text_content(raw)

    if prop_type == "created_time":
        return block.get("created_time")
    if prop_type == "last_edited_time":
        return block.get("last_edited_time")
    if prop_type == "checkbox":
        return content == "Yes"
    if prop_type in ("select", "multi_select"):
        return [item for item in content.split(",") if item] if content else []
    if prop_type == "number":
        try:
            return float(content)
        except ValueError:
            return None
    if prop_type == "date":
        try:
            # [["‣", [["d", {"start_date": "2024-01-01", ...}]]]]
            return raw[0][1][0][1].get("start_date")
        except (IndexError, KeyError, TypeError, AttributeError):
            return None

    return content


def get_canonical_page_id(
    page_id: str,
    record_map: RecordMap,
    *,
    uuid: bool = False,
) -> Optional[str]:
    """
    ページの URL 上の ID（スラッグ）を決める。

    - Slug プロパティがあればそれを優先
    - 無ければタイトルを正規化したもの
    - uuid=True の場合は末尾に 32 桁 ID を付ける
    - 何も分からない場合は 32 桁 ID そのもの
    """
    clean_page_id = parse_page_id(page_id, uuid=False)
    if not clean_page_id:
        return None

    block = get_block_value(record_map, page_id)
    if block:
        slug = get_page_property("slug", block, record_map) or normalize_title(
            get_block_title(block, record_map)
        )
        if slug:
            return f"{slug}-{clean_page_id}" if uuid else slug

    return clean_page_id


def merge_record_maps(base: RecordMap, other: RecordMap) -> RecordMap:
    """
    2 つの record map をテーブル単位で浅くマージする（other が優先）。
    """
    merged: RecordMap = dict(base)
    for table in set(RECORD_MAP_TABLES) | set(other.keys()):
        left = base.get(table)
        right = other.get(table)
        if isinstance(left, dict) or isinstance(right, dict):
            merged[table] = {**(left or {}), **(right or {})}
        elif right is not None:
            merged[table] = right
    return merged


def get_page_content_block_ids(record_map: RecordMap, block_id: Optional[str] = None) -> List[str]:
    """
    ページ配下のブロック ID を content を辿って列挙する。

    他ページ（子ページ）の中身には潜らないが、子ページ自体の ID は含める。
    """
    root_id = block_id or next(iter(record_map.get("block") or {}), None)
    if root_id is None:
        return []

    seen: Set[str] = set()
    ordered: List[str] = []
    stack = [root_id]

    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        ordered.append(current)

        block = get_block_value(record_map, current)
        if not block:
            continue

        if current != root_id and block.get("type") in PAGE_TYPES:
            continue

        content = block.get("content")
        if isinstance(content, list):
            stack.extend(reversed(content))

    return ordered
