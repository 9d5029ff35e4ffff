# backend/tests/conftest.py
"""
Pytest configuration for the Notion public site backend tests.

- Ensures that the project root (backend/) is added to sys.path
  so that `import notion_site.*` works correctly in tests.
- Ensures required environment variables for tests are set
  with safe dummy values (e.g., NOTION_ROOT_PAGE_ID).
- Provides small builders for Notion record maps and a dummy client.
"""

import copy
import os
import sys
from pathlib import Path

import pytest

ROOT_PAGE_ID = "11111111-1111-1111-1111-111111111111"
COLLECTION_VIEW_BLOCK_ID = "22222222-2222-2222-2222-222222222222"
COLLECTION_ID = "33333333-3333-3333-3333-333333333333"
VIEW_ID = "44444444-4444-4444-4444-444444444444"
SPACE_ID = "55555555-5555-5555-5555-555555555555"


def _ensure_project_root_in_sys_path() -> None:
    # This file is located at: backend/tests/conftest.py
    # parents[1] -> backend/
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)

    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)


def _ensure_test_env_vars() -> None:
    """
    Set dummy environment variables required for tests.

    These values are only for local testing and do NOT contain real secrets.
    """
    os.environ.setdefault("NOTION_ROOT_PAGE_ID", ROOT_PAGE_ID.replace("-", ""))
    os.environ.setdefault("NOTION_API_BASE_URL", "https://notion.test/api/v3")
    os.environ.setdefault("NOTION_RETRY_BACKOFF_SECONDS", "0")
    os.environ.setdefault("SITE_MAP_CRAWL_DELAY_SECONDS", "0")


_ensure_project_root_in_sys_path()
_ensure_test_env_vars()

from notion_site.notion.config import NotionConfig, get_notion_config  # noqa: E402
from notion_site.notion.router import get_page_service  # noqa: E402
from notion_site.notion.service import NotionPageService  # noqa: E402
from notion_site.site.config import SiteConfig, get_site_config  # noqa: E402
from notion_site.site.router import get_site_map_service  # noqa: E402


def item_id(index: int) -> str:
    """コレクションアイテム用の UUID を作る。"""
    return f"{index:08x}-0000-4000-8000-000000000000"


@pytest.fixture(autouse=True)
def _clear_cached_singletons():
    caches = (get_notion_config, get_site_config, get_page_service, get_site_map_service)
    for cached in caches:
        cached.cache_clear()
    yield
    for cached in caches:
        cached.cache_clear()


@pytest.fixture
def notion_config() -> NotionConfig:
    return NotionConfig(
        api_base_url="https://notion.test/api/v3",
        token_v2=None,
        active_user=None,
        user_time_zone="UTC",
        retry_backoff_seconds=0.0,
        retry_backoff_max_seconds=0.0,
    )


@pytest.fixture
def site_config() -> SiteConfig:
    return SiteConfig(
        root_notion_page_id=ROOT_PAGE_ID,
        root_notion_space_id=SPACE_ID,
        name="Test Site",
        domain="example.com",
        author="tester",
        description="test site",
        page_size=10,
        site_map_crawl_delay_seconds=0.0,
    )


@pytest.fixture
def make_record_map():
    """
    ルートページ + コレクションビュー 1 つ + アイテム N 件の record map を作るビルダー。
    """

    def _build(item_count: int = 25) -> dict:
        item_ids = [item_id(i + 1) for i in range(item_count)]

        blocks = {
            ROOT_PAGE_ID: {
                "role": "reader",
                "value": {
                    "id": ROOT_PAGE_ID,
                    "type": "page",
                    "space_id": SPACE_ID,
                    "properties": {"title": [["Home"]]},
                    "content": [COLLECTION_VIEW_BLOCK_ID],
                },
            },
            COLLECTION_VIEW_BLOCK_ID: {
                "role": "reader",
                "value": {
                    "id": COLLECTION_VIEW_BLOCK_ID,
                    "type": "collection_view",
                    "parent_id": ROOT_PAGE_ID,
                    "collection_id": COLLECTION_ID,
                    "view_ids": [VIEW_ID],
                },
            },
        }
        for index, block_id in enumerate(item_ids, start=1):
            blocks[block_id] = {
                "role": "reader",
                "value": {
                    "id": block_id,
                    "type": "page",
                    "parent_id": COLLECTION_ID,
                    "parent_table": "collection",
                    "space_id": SPACE_ID,
                    "properties": {"title": [[f"Post {index}"]]},
                },
            }

        return {
            "block": blocks,
            "collection": {
                COLLECTION_ID: {
                    "role": "reader",
                    "value": {
                        "id": COLLECTION_ID,
                        "name": [["Posts"]],
                        "schema": {
                            "title": {"name": "Name", "type": "title"},
                            "pub1": {"name": "Public", "type": "checkbox"},
                        },
                    },
                }
            },
            "collection_view": {
                VIEW_ID: {"role": "reader", "value": {"id": VIEW_ID, "type": "table"}},
            },
            "notion_user": {},
            "signed_urls": {},
            "collection_query": {
                COLLECTION_ID: {
                    VIEW_ID: {
                        "collection_group_results": {
                            "type": "results",
                            "blockIds": list(item_ids),
                            "hasMore": False,
                        }
                    }
                }
            },
        }

    return _build


class DummyNotionClient:
    """
    実際の NotionClient の代わりに使用するテスト用クライアント。

    get_page は record map のコピーを返し、呼び出しを記録する。
    """

    def __init__(self, record_map: dict, pages: dict | None = None) -> None:
        self.record_map = record_map
        self.pages = pages or {}
        self.get_page_calls = []
        self.collection_calls = []

    def get_page(self, page_id, **options):
        self.get_page_calls.append((page_id, options))
        source = self.pages.get(page_id, self.record_map)
        return copy.deepcopy(source)

    def get_collection_view(self, collection_view_id):
        wrapper = self.record_map["collection_view"].get(collection_view_id) or {}
        return wrapper.get("value")

    def get_collection_data(self, collection_id, collection_view_id, collection_view=None, *, limit=None):
        self.collection_calls.append((collection_id, collection_view_id, collection_view, limit))
        group = self.record_map["collection_query"][collection_id][collection_view_id][
            "collection_group_results"
        ]
        block_ids = group["blockIds"] if limit is None else group["blockIds"][:limit]
        return {
            "result": {
                "type": "reducer",
                "reducerResults": {
                    "collection_group_results": {"type": "results", "blockIds": list(block_ids)}
                },
            },
            "recordMap": copy.deepcopy(
                {
                    "block": {
                        block_id: self.record_map["block"][block_id]
                        for block_id in block_ids
                    },
                    "collection": self.record_map["collection"],
                }
            ),
        }

    def search(self, params):
        return {"results": [], "total": 0, "params": params}


class DummyTweetClient:
    def __init__(self, tweets: dict | None = None) -> None:
        self.tweets = tweets or {}
        self.calls = []

    def fetch_tweet(self, tweet_id):
        self.calls.append(tweet_id)
        return self.tweets.get(tweet_id)


@pytest.fixture
def dummy_client(make_record_map) -> DummyNotionClient:
    return DummyNotionClient(make_record_map(25))


@pytest.fixture
def page_service(dummy_client, site_config, notion_config) -> NotionPageService:
    return NotionPageService(
        dummy_client,
        site_config=site_config,
        notion_config=notion_config,
        tweet_client=DummyTweetClient(),
    )
