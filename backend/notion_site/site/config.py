# backend/notion_site/site/config.py

"""
公開サイトとしての設定値（ルートページ・サイト名・ナビゲーション等）。
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, List, Optional, Tuple

from notion_site.notion.ids import parse_page_id
from notion_site.utils.config import (
    get_env,
    get_env_bool,
    get_env_float,
    get_env_int,
    get_env_json,
)

NAVIGATION_STYLES = ("default", "custom")


@dataclass(frozen=True)
class NavigationLink:
    """カスタムナビゲーションヘッダーのリンク 1 件。"""

    title: str
    page_id: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class SiteConfig:
    """サイト設定値コンテナ。"""

    root_notion_page_id: str
    root_notion_space_id: Optional[str]
    name: str
    domain: str
    author: str
    description: str
    page_size: int = 10
    default_fallback_image: Optional[str] = None
    navigation_style: str = "default"
    navigation_links: Tuple[NavigationLink, ...] = field(default_factory=tuple)
    include_notion_id_in_urls: bool = False
    site_map_crawl_delay_seconds: float = 1.0


def _parse_navigation_links(raw: Any) -> Tuple[NavigationLink, ...]:
    """
    NAVIGATION_LINKS（JSON 配列）を NavigationLink のタプルに変換する。

    例: [{"title": "About", "pageId": "f1199d37579b41cbabfc0b5174f4256a"}]
    title の無い要素は捨てる。
    """
    if not isinstance(raw, list):
        return ()

    links: List[NavigationLink] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        links.append(
            NavigationLink(
                title=str(item["title"]),
                page_id=parse_page_id(item.get("pageId")),
                url=item.get("url"),
            )
        )
    return tuple(links)


@lru_cache()
def get_site_config() -> SiteConfig:
    """
    環境変数からサイト設定を読み込む。

    必須:
      - NOTION_ROOT_PAGE_ID

    任意:
      - NOTION_ROOT_SPACE_ID
      - SITE_NAME / SITE_DOMAIN / SITE_AUTHOR / SITE_DESCRIPTION
      - SITE_PAGE_SIZE (デフォルト: 10)
      - DEFAULT_FALLBACK_IMAGE
      - NAVIGATION_STYLE ("default" | "custom")
      - NAVIGATION_LINKS (JSON 配列)
      - INCLUDE_NOTION_ID_IN_URLS
      - SITE_MAP_CRAWL_DELAY_SECONDS (デフォルト: 1)
    """
    raw_root_page_id = get_env("NOTION_ROOT_PAGE_ID")
    root_page_id = parse_page_id(raw_root_page_id)
    if not root_page_id:
        raise RuntimeError(
            f"NOTION_ROOT_PAGE_ID is not a valid Notion page id: {raw_root_page_id!r}"
        )

    navigation_style = get_env("NAVIGATION_STYLE", default="default", required=False)
    if navigation_style not in NAVIGATION_STYLES:
        navigation_style = "default"

    return SiteConfig(
        root_notion_page_id=root_page_id,
        root_notion_space_id=parse_page_id(get_env("NOTION_ROOT_SPACE_ID", required=False)),
        name=get_env("SITE_NAME", default="Notion Site", required=False),
        domain=get_env("SITE_DOMAIN", default="localhost", required=False),
        author=get_env("SITE_AUTHOR", default="", required=False),
        description=get_env("SITE_DESCRIPTION", default="", required=False),
        page_size=max(1, get_env_int("SITE_PAGE_SIZE", 10)),
        default_fallback_image=get_env("DEFAULT_FALLBACK_IMAGE", required=False),
        navigation_style=navigation_style,
        navigation_links=_parse_navigation_links(get_env_json("NAVIGATION_LINKS", [])),
        include_notion_id_in_urls=get_env_bool("INCLUDE_NOTION_ID_IN_URLS", False),
        site_map_crawl_delay_seconds=max(0.0, get_env_float("SITE_MAP_CRAWL_DELAY_SECONDS", 1.0)),
    )
