# backend/tests/test_notion_service.py

from dataclasses import replace

import pytest

from notion_site.notion.client import NotionAPIError, NotionRateLimitError
from notion_site.notion.schemas import PaginationOptions
from notion_site.notion.service import NotionPageService, is_rate_limit_error
from notion_site.site.config import NavigationLink

from conftest import (
    COLLECTION_ID,
    ROOT_PAGE_ID,
    VIEW_ID,
    DummyNotionClient,
    DummyTweetClient,
    item_id,
)

NAV_PAGE_ID = "77777777-7777-7777-7777-777777777777"


class FlakyClient(DummyNotionClient):
    """
    指定回数だけ例外を投げてから成功するクライアント。
    """

    def __init__(self, record_map, errors):
        super().__init__(record_map)
        self.errors = list(errors)

    def get_page(self, page_id, **options):
        self.get_page_calls.append((page_id, options))
        if self.errors:
            raise self.errors.pop(0)
        return dict(self.record_map)


def _service(client, site_config, notion_config, **site_overrides):
    return NotionPageService(
        client,
        site_config=replace(site_config, **site_overrides),
        notion_config=notion_config,
        tweet_client=DummyTweetClient(),
    )


def test_is_rate_limit_error():
    assert is_rate_limit_error(NotionRateLimitError("429"))
    assert is_rate_limit_error(RuntimeError("Too Many Requests"))
    assert is_rate_limit_error(NotionAPIError("boom", status_code=429))
    assert not is_rate_limit_error(NotionAPIError("boom", status_code=500))


def test_get_page_retries_on_rate_limit(make_record_map, site_config, notion_config):
    client = FlakyClient(
        make_record_map(3),
        [NotionRateLimitError("429"), RuntimeError("HTTP 429 Too Many Requests")],
    )
    service = _service(client, site_config, notion_config)

    record_map = service.get_page(ROOT_PAGE_ID)

    assert ROOT_PAGE_ID in record_map["block"]
    assert len(client.get_page_calls) == 3


def test_get_page_gives_up_after_max_retries(make_record_map, site_config, notion_config):
    client = FlakyClient(make_record_map(3), [NotionRateLimitError("429")] * 5)
    service = _service(client, site_config, replace(notion_config, max_retries=3))

    with pytest.raises(NotionRateLimitError):
        service.get_page(ROOT_PAGE_ID)

    assert len(client.get_page_calls) == 3


def test_get_page_does_not_retry_other_errors(make_record_map, site_config, notion_config):
    client = FlakyClient(make_record_map(3), [NotionAPIError("boom", status_code=500)])
    service = _service(client, site_config, notion_config)

    with pytest.raises(NotionAPIError):
        service.get_page(ROOT_PAGE_ID)

    assert len(client.get_page_calls) == 1


def test_get_page_stores_tweets_map(make_record_map, site_config, notion_config):
    record_map = make_record_map(1)
    tweet_block = "88888888-8888-8888-8888-888888888888"
    record_map["block"][tweet_block] = {
        "value": {
            "id": tweet_block,
            "type": "tweet",
            "properties": {"source": [["https://twitter.com/user/status/12345?s=20"]]},
        }
    }
    tweet_client = DummyTweetClient({"12345": {"text": "hello"}})
    service = NotionPageService(
        DummyNotionClient(record_map),
        site_config=site_config,
        notion_config=notion_config,
        tweet_client=tweet_client,
    )

    result = service.get_page(ROOT_PAGE_ID)

    assert result["tweets"] == {"12345": {"text": "hello"}}
    assert tweet_client.calls == ["12345"]


def test_custom_navigation_pages_are_merged_once(make_record_map, site_config, notion_config):
    nav_record_map = {
        "block": {
            NAV_PAGE_ID: {"value": {"id": NAV_PAGE_ID, "type": "page", "properties": {"title": [["About"]]}}}
        }
    }
    client = DummyNotionClient(make_record_map(3), pages={NAV_PAGE_ID: nav_record_map})
    service = _service(
        client,
        site_config,
        notion_config,
        navigation_style="custom",
        navigation_links=(NavigationLink(title="About", page_id=NAV_PAGE_ID),),
    )

    first = service.get_page(ROOT_PAGE_ID)
    second = service.get_page(ROOT_PAGE_ID)

    assert NAV_PAGE_ID in first["block"]
    assert NAV_PAGE_ID in second["block"]
    nav_calls = [call for call in client.get_page_calls if call[0] == NAV_PAGE_ID]
    assert len(nav_calls) == 1
    assert nav_calls[0][1] == {
        "chunk_limit": 1,
        "fetch_missing_blocks": False,
        "fetch_collections": False,
        "sign_file_urls": False,
    }


def test_default_navigation_skips_navigation_pages(make_record_map, site_config, notion_config):
    client = DummyNotionClient(make_record_map(3))
    service = _service(
        client,
        site_config,
        notion_config,
        navigation_links=(NavigationLink(title="About", page_id=NAV_PAGE_ID),),
    )

    service.get_page(ROOT_PAGE_ID)

    assert [call[0] for call in client.get_page_calls] == [ROOT_PAGE_ID]


def test_get_page_with_pagination_without_options(page_service):
    record_map, meta = page_service.get_page_with_pagination(ROOT_PAGE_ID)

    group = record_map["collection_query"][COLLECTION_ID][VIEW_ID]["collection_group_results"]
    assert len(group["blockIds"]) == 25
    assert meta is None


def test_get_page_with_pagination_applies_options(page_service):
    record_map, meta = page_service.get_page_with_pagination(
        ROOT_PAGE_ID, PaginationOptions(cursor="10", page_size=10)
    )

    group = record_map["collection_query"][COLLECTION_ID][VIEW_ID]["collection_group_results"]
    assert group["blockIds"] == [item_id(i) for i in range(11, 21)]
    assert meta.current_page == 2
    assert meta.next_cursor == "20"


def test_collection_data_paginated_matches_server_side_slicing(page_service, dummy_client):
    response = page_service.get_collection_data_paginated(
        COLLECTION_ID, VIEW_ID, limit=10, cursor="10"
    )

    assert response.data.block_ids == [item_id(i) for i in range(11, 21)]
    assert response.data.total == 10
    assert response.has_more is True
    assert response.next_cursor == "20"
    assert set(response.data.record_map["block"]) == set(response.data.block_ids)

    # cursor + limit + 1 件だけ問い合わせる。ビューは取得し直して並び順をそろえる
    _, _, view, limit = dummy_client.collection_calls[0]
    assert limit == 21
    assert view == {"id": VIEW_ID, "type": "table"}


def test_collection_data_paginated_last_page(page_service):
    response = page_service.get_collection_data_paginated(
        COLLECTION_ID, VIEW_ID, limit=10, cursor="20"
    )

    assert response.data.block_ids == [item_id(i) for i in range(21, 26)]
    assert response.has_more is False
    assert response.next_cursor is None


def test_collection_data_paginated_load_all(page_service, dummy_client):
    response = page_service.get_collection_data_paginated(
        COLLECTION_ID, VIEW_ID, limit=10, load_all=True
    )

    assert len(response.data.block_ids) == 25
    assert response.has_more is False
    assert dummy_client.collection_calls[0][3] is None


def test_search_delegates_to_client(page_service):
    results = page_service.search({"ancestorId": ROOT_PAGE_ID, "query": "post"})

    assert results["params"]["query"] == "post"
