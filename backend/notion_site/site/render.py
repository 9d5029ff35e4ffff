# backend/notion_site/site/render.py

"""
record map → HTML の描画。

record map を Jinja2 テンプレートが扱いやすいビューモデル（dict のツリー）に変換し、
templates/ 配下のテンプレートで HTML にする。

- CollectionWithPagination: コレクションの表示中アイテム + PaginationControls
- PaginationControls: 「Page N」と前後ページへのリンク
- LoadMoreButton: 続きがある場合のみ表示する「Load More」ボタン
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from jinja2 import Environment, PackageLoader, select_autoescape

from notion_site.notion.ids import uuid_to_id
from notion_site.notion.record_map import (
    PAGE_TYPES,
    RecordMap,
    get_block_title,
    get_block_value,
    get_canonical_page_id,
    get_collection_id,
    is_collection_view_block,
)
from notion_site.notion.schemas import PaginationMeta
from notion_site.notion.tweets import extract_tweet_id

from .config import SiteConfig
from .resolver import ResolvedPage

env = Environment(
    loader=PackageLoader("notion_site", "templates"),
    autoescape=select_autoescape(["html", "xml"]),
)

_HEADER_LEVELS = {"header": 1, "sub_header": 2, "sub_sub_header": 3}
_LIST_TYPES = {"bulleted_list": "ul", "numbered_list": "ol"}


# ----------------------------------------------------------------------
# URL
# ----------------------------------------------------------------------
def map_page_url(page_id: str, record_map: RecordMap, site: SiteConfig) -> str:
    """ページ ID をサイト内 URL に変換する。ルートページは "/"。"""
    if uuid_to_id(page_id) == uuid_to_id(site.root_notion_page_id):
        return "/"
    canonical = get_canonical_page_id(page_id, record_map, uuid=site.include_notion_id_in_urls)
    return f"/{canonical or uuid_to_id(page_id)}"


def map_image_url(url: Optional[str], block: Dict[str, Any]) -> Optional[str]:
    """
    画像 URL を表示用に変換する。

    Notion が管理する画像は notion.so の画像プロキシ経由にする。
    """
    if not url:
        return None
    if url.startswith("data:") or url.startswith("https://images.unsplash.com"):
        return url
    if url.startswith("/images"):
        url = f"https://www.notion.so{url}"
    if "amazonaws.com" not in url and "notion-static.com" not in url and not url.startswith("https://www.notion.so"):
        return url
    return f"https://www.notion.so/image/{quote(url, safe='')}?table=block&id={block.get('id', '')}"


# ----------------------------------------------------------------------
# コンポーネント
# ----------------------------------------------------------------------
def pagination_controls(current_page: int, has_next: bool, has_previous: bool) -> Dict[str, Any]:
    """
    PaginationControls のビューモデル。

    1 ページ目へのリンクは "/"、それ以外は "/?page=N"。
    """
    previous_page = current_page - 1
    next_page = current_page + 1

    return {
        "current_page": current_page,
        "has_next": has_next,
        "has_previous": has_previous,
        "previous_url": "/" if previous_page <= 1 else f"/?page={previous_page}",
        "next_url": f"/?page={next_page}",
    }


def load_more_button(
    meta: Optional[PaginationMeta],
    page_id: str,
    collection_id: Optional[str] = None,
    collection_view_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    LoadMoreButton のビューモデル。続きが無ければ None（ボタン自体を出さない）。

    collection_id / collection_view_id が分かる場合は /api/load-more で追記読み込み、
    分からない場合は ?cursor= 付きでページを再読み込みする。
    """
    if not meta or not meta.has_more or not meta.next_cursor:
        return None

    endpoint = None
    if collection_id and collection_view_id:
        endpoint = "/api/load-more?" + urlencode(
            {
                "pageId": page_id,
                "cursor": meta.next_cursor,
                "collectionId": collection_id,
                "collectionViewId": collection_view_id,
            }
        )

    return {
        "next_cursor": meta.next_cursor,
        "endpoint": endpoint,
        "reload_url": "?" + urlencode({"cursor": meta.next_cursor}),
    }


def _view_pagination_meta(
    ctx: "RenderContext",
    view_id: Optional[str],
    group: Dict[str, Any],
) -> Optional[PaginationMeta]:
    """
    表示中のビューに対応する PaginationMeta を返す。

    ページ全体の meta を元に、続きの有無はビューごとの hasMore で絞り込む。
    ページ分割されたビューが無い場合は None（コントロールを出さない）。
    """
    meta = ctx.pagination_meta
    if not ctx.enable_pagination or not meta or view_id is None:
        return None

    has_more = meta.has_more and bool(group.get("hasMore", True))
    return PaginationMeta(
        has_more=has_more,
        next_cursor=meta.next_cursor if has_more else None,
        current_page=meta.current_page,
        has_previous=meta.has_previous,
    )


def collection_with_pagination(
    block: Dict[str, Any],
    ctx: "RenderContext",
) -> Dict[str, Any]:
    """
    コレクションビューブロック 1 つ分のビューモデル。

    表示中のアイテムは collection_query の blockIds（ページ分割済み）から取る。
    """
    collection_id = get_collection_id(block)
    views = (ctx.record_map.get("collection_query") or {}).get(collection_id) or {}

    view_id = None
    view_group: Dict[str, Any] = {}
    item_ids: List[str] = []
    for candidate in block.get("view_ids") or []:
        group = (views.get(candidate) or {}).get("collection_group_results") or {}
        if group.get("blockIds") is not None:
            view_id = candidate
            view_group = group
            item_ids = list(group["blockIds"])
            break

    items = []
    for item_id in item_ids:
        item = get_block_value(ctx.record_map, item_id)
        if not item:
            continue
        items.append(
            {
                "id": item_id,
                "title": get_block_title(item, ctx.record_map) or "Untitled",
                "url": map_page_url(item_id, ctx.record_map, ctx.site),
            }
        )

    meta = _view_pagination_meta(ctx, view_id, view_group)
    controls = None
    if meta:
        controls = pagination_controls(
            current_page=meta.current_page or 1,
            has_next=meta.has_more,
            has_previous=meta.has_previous,
        )

    return {
        "type": "collection",
        "id": block.get("id"),
        "title": get_block_title(block, ctx.record_map),
        "collection_id": collection_id,
        "view_id": view_id,
        "items": items,
        "pagination_controls": controls,
        "load_more": load_more_button(
            meta,
            ctx.page_id,
            collection_id,
            view_id,
        ),
    }


# ----------------------------------------------------------------------
# ブロック
# ----------------------------------------------------------------------
class RenderContext:
    """ブロック描画中に持ち回る情報。"""

    def __init__(
        self,
        record_map: RecordMap,
        site: SiteConfig,
        page_id: str,
        pagination_meta: Optional[PaginationMeta] = None,
    ) -> None:
        self.record_map = record_map
        self.site = site
        self.page_id = page_id
        self.pagination_meta = pagination_meta
        self.enable_pagination = pagination_meta is not None


def rich_text(value: Any) -> List[Dict[str, Any]]:
    """
    rich text を [{text, href, bold, italic, code, strike}, ...] に変換する。
    """
    segments: List[Dict[str, Any]] = []
    if not isinstance(value, list):
        return segments

    for segment in value:
        if not isinstance(segment, list) or not segment or not isinstance(segment[0], str):
            continue
        node: Dict[str, Any] = {"text": segment[0], "href": None}
        for decoration in segment[1] if len(segment) > 1 and isinstance(segment[1], list) else []:
            if not decoration:
                continue
            kind = decoration[0]
            if kind == "a" and len(decoration) > 1:
                node["href"] = decoration[1]
            elif kind == "b":
                node["bold"] = True
            elif kind == "i":
                node["italic"] = True
            elif kind == "c":
                node["code"] = True
            elif kind == "s":
                node["strike"] = True
        segments.append(node)
    return segments


def _block_node(block_id: str, ctx: RenderContext) -> Optional[Dict[str, Any]]:
    block = get_block_value(ctx.record_map, block_id)
    if not block or block.get("alive") is False:
        return None

    block_type = block.get("type")
    properties = block.get("properties") or {}
    node: Dict[str, Any] = {"type": block_type, "id": block_id}

    if is_collection_view_block(block):
        return collection_with_pagination(block, ctx)

    if block_type in PAGE_TYPES:
        node.update(
            type="page_link",
            title=get_block_title(block, ctx.record_map) or "Untitled",
            url=map_page_url(block_id, ctx.record_map, ctx.site),
        )
        return node

    if block_type in _HEADER_LEVELS:
        node.update(type="header", level=_HEADER_LEVELS[block_type])

    if block_type == "image":
        try:
            source = properties["source"][0][0]
        except (KeyError, IndexError, TypeError):
            source = None
        signed = (ctx.record_map.get("signed_urls") or {}).get(block_id)
        node["src"] = signed or map_image_url(source, block)
        node["caption"] = rich_text(properties.get("caption"))
    elif block_type == "tweet":
        try:
            source = properties["source"][0][0]
        except (KeyError, IndexError, TypeError):
            source = None
        tweet_id = extract_tweet_id(source)
        tweet = (ctx.record_map.get("tweets") or {}).get(tweet_id)
        node.update(
            url=source,
            text=(tweet or {}).get("text"),
            author=((tweet or {}).get("user") or {}).get("name"),
            screen_name=((tweet or {}).get("user") or {}).get("screen_name"),
        )
    elif block_type == "bookmark":
        try:
            node["url"] = properties["link"][0][0]
        except (KeyError, IndexError, TypeError):
            node["url"] = None
    elif block_type == "to_do":
        node["checked"] = (properties.get("checked") or [[""]])[0][0] == "Yes"
    elif block_type == "callout":
        node["icon"] = (block.get("format") or {}).get("page_icon")

    node["title"] = rich_text(properties.get("title"))
    node["children"] = render_blocks(block.get("content") or [], ctx)
    return node


def render_blocks(block_ids: List[str], ctx: RenderContext) -> List[Dict[str, Any]]:
    """
    ブロック ID の配列をビューモデルの配列に変換する。

    連続する箇条書き・番号付きリストは 1 つの list ノードにまとめる。
    """
    nodes: List[Dict[str, Any]] = []
    for block_id in block_ids:
        node = _block_node(block_id, ctx)
        if node is None:
            continue

        list_tag = _LIST_TYPES.get(node["type"])
        if list_tag:
            if nodes and nodes[-1]["type"] == "list" and nodes[-1]["tag"] == list_tag:
                nodes[-1]["items"].append(node)
            else:
                nodes.append({"type": "list", "tag": list_tag, "items": [node]})
            continue

        nodes.append(node)
    return nodes


def navigation_links(record_map: RecordMap, site: SiteConfig) -> List[Dict[str, str]]:
    """カスタムナビゲーションのリンク一覧。default スタイルなら空。"""
    if site.navigation_style == "default":
        return []

    links = []
    for link in site.navigation_links:
        if link.url:
            href = link.url
        elif link.page_id:
            href = map_page_url(link.page_id, record_map, site)
        else:
            continue
        links.append({"title": link.title, "href": href})
    return links


def build_page_context(resolved: ResolvedPage) -> Dict[str, Any]:
    """ResolvedPage からテンプレートに渡すコンテキストを作る。"""
    ctx = RenderContext(
        record_map=resolved.record_map,
        site=resolved.site,
        page_id=resolved.page_id,
        pagination_meta=resolved.pagination_meta,
    )
    page_block = get_block_value(resolved.record_map, resolved.page_id) or {}

    if is_collection_view_block(page_block):
        # collection_view_page はページ自体がコレクション
        blocks = [collection_with_pagination(page_block, ctx)]
    else:
        blocks = render_blocks(page_block.get("content") or [], ctx)

    return {
        "site": resolved.site,
        "page_id": resolved.page_id,
        "title": get_block_title(page_block, resolved.record_map) or resolved.site.name,
        "navigation": navigation_links(resolved.record_map, resolved.site),
        "blocks": blocks,
    }


def render_page(resolved: ResolvedPage) -> str:
    """ページ全体の HTML を返す。"""
    template = env.get_template("page.html")
    return template.render(**build_page_context(resolved))


def render_sitemap(site: SiteConfig, canonical_page_map: Dict[str, str]) -> str:
    """sitemap.xml を返す。"""
    template = env.get_template("sitemap.xml")
    return template.render(site=site, slugs=sorted(canonical_page_map.keys()))
