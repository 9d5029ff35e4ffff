# backend/notion_site/notion/ids.py

"""
Notion のページ ID / スラッグまわりの小さなヘルパー群。
"""

import re
from typing import Optional

_PAGE_ID_RE = re.compile(r"\b([0-9a-f]{32})\b", re.IGNORECASE)
_PAGE_UUID_RE = re.compile(
    r"\b([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\b",
    re.IGNORECASE,
)

# 英数字・ハイフン・CJK 統合漢字・ひらがな・カタカナ・和文記号以外を落とす
_TITLE_STRIP_RE = re.compile(
    r"[^a-zA-Z0-9\-\u4e00-\u9fff\u3041-\u3096\u30a1-\u30fc\u3000-\u303f]"
)


def uuid_to_id(uuid: str) -> str:
    """ダッシュ区切りの UUID を 32 桁の ID に変換する。"""
    return (uuid or "").replace("-", "")


def id_to_uuid(page_id: str) -> str:
    """32 桁の ID を 8-4-4-4-12 形式の UUID に変換する。"""
    page_id = page_id or ""
    return (
        f"{page_id[0:8]}-{page_id[8:12]}-{page_id[12:16]}-"
        f"{page_id[16:20]}-{page_id[20:]}"
    )


def parse_page_id(text: Optional[str], *, uuid: bool = True) -> Optional[str]:
    """
    文字列（URL パスやスラッグ）からページ ID を取り出す。

    - クエリ文字列は無視する
    - 32 桁形式・UUID 形式のどちらも受け付ける
    - 見つからなければ None
    """
    if not text:
        return None

    text = text.split("?")[0]

    match = _PAGE_ID_RE.search(text)
    if match:
        page_id = match.group(1).lower()
        return id_to_uuid(page_id) if uuid else page_id

    match = _PAGE_UUID_RE.search(text)
    if match:
        page_uuid = match.group(1).lower()
        return page_uuid if uuid else uuid_to_id(page_uuid)

    return None


def normalize_title(title: Optional[str]) -> str:
    """
    ページタイトルを URL スラッグ用に正規化する。

    例: "Hello World!" -> "hello-world"
    """
    slug = (title or "").replace(" ", "-")
    slug = _TITLE_STRIP_RE.sub("", slug)
    slug = slug.replace("--", "-")
    if slug.endswith("-"):
        slug = slug[:-1]
    if slug.startswith("-"):
        slug = slug[1:]
    return slug.strip().lower()
