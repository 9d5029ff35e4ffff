# backend/tests/test_site_map.py

import logging

from notion_site.site.site_map import SiteMapService

from conftest import (
    ROOT_PAGE_ID,
    SPACE_ID,
    DummyNotionClient,
    item_id,
)

SUB_PAGE_ID = "99999999-9999-9999-9999-999999999999"
OTHER_SPACE_PAGE_ID = "abababab-abab-abab-abab-abababababab"
DEEP_PAGE_ID = "cdcdcdcd-cdcd-cdcd-cdcd-cdcdcdcdcdcd"


def _page(page_id, title, **extra):
    return {"value": {"id": page_id, "type": "page", "space_id": SPACE_ID, "properties": {"title": [[title]]}, **extra}}


def _build_pages(make_record_map):
    root = make_record_map(3)
    root["block"][SUB_PAGE_ID] = _page(SUB_PAGE_ID, "About Me", parent_id=ROOT_PAGE_ID)

    # Public = No のアイテムはサイトマップに載せない
    root["block"][item_id(2)]["value"]["properties"]["pub1"] = [["No"]]
    for index in (1, 3):
        root["block"][item_id(index)]["value"]["properties"]["pub1"] = [["Yes"]]

    other_space = {
        "block": {
            OTHER_SPACE_PAGE_ID: {
                "value": {
                    "id": OTHER_SPACE_PAGE_ID,
                    "type": "page",
                    "space_id": "another-space",
                    "properties": {"title": [["Elsewhere"]]},
                }
            },
            DEEP_PAGE_ID: _page(DEEP_PAGE_ID, "Deep"),
        }
    }
    # 子ページの record map には別ワークスペースのページへのリンクがある
    sub = {"block": {SUB_PAGE_ID: _page(SUB_PAGE_ID, "About Me"), OTHER_SPACE_PAGE_ID: other_space["block"][OTHER_SPACE_PAGE_ID]}}

    pages = {ROOT_PAGE_ID: root, SUB_PAGE_ID: sub, OTHER_SPACE_PAGE_ID: other_space}
    for index in (1, 2, 3):
        pages[item_id(index)] = {"block": {item_id(index): root["block"][item_id(index)]}, "collection": root["collection"]}
    return pages


def _service(page_service, pages):
    page_service.client = DummyNotionClient(pages[ROOT_PAGE_ID], pages=pages)
    sleeps = []
    return SiteMapService(page_service, sleep=sleeps.append), sleeps


def test_crawl_follows_sub_pages_and_collection_items(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    service, _ = _service(page_service, pages)

    page_map = service.crawl(ROOT_PAGE_ID, SPACE_ID)

    assert set(page_map) == {ROOT_PAGE_ID, SUB_PAGE_ID, item_id(1), item_id(2), item_id(3)}


def test_crawl_skips_pages_from_other_spaces(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    service, _ = _service(page_service, pages)

    site_map = service.get_site_map()

    # 別ワークスペースのページは取得もしないし、サイトマップにも載せない
    fetched = [call[0] for call in page_service.client.get_page_calls]
    assert OTHER_SPACE_PAGE_ID not in fetched
    assert DEEP_PAGE_ID not in fetched
    assert OTHER_SPACE_PAGE_ID not in site_map.page_map
    assert "elsewhere" not in site_map.canonical_page_map


def test_crawl_skips_collection_items_from_other_spaces(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    pages[ROOT_PAGE_ID]["block"][item_id(3)]["value"]["space_id"] = "another-space"
    service, _ = _service(page_service, pages)

    page_map = service.crawl(ROOT_PAGE_ID, SPACE_ID)

    assert item_id(3) not in page_map
    assert item_id(1) in page_map


def test_crawl_without_root_space_follows_everything(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    service, _ = _service(page_service, pages)

    page_map = service.crawl(ROOT_PAGE_ID)

    assert OTHER_SPACE_PAGE_ID in page_map
    assert DEEP_PAGE_ID in page_map


def test_site_map_canonical_ids_skip_private_pages(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    service, _ = _service(page_service, pages)

    site_map = service.get_site_map()

    assert site_map.canonical_page_map["home"] == ROOT_PAGE_ID
    assert site_map.canonical_page_map["about-me"] == SUB_PAGE_ID
    assert site_map.canonical_page_map["post-1"] == item_id(1)
    assert site_map.canonical_page_map["post-3"] == item_id(3)
    assert "post-2" not in site_map.canonical_page_map
    assert site_map.site is page_service.site_config


def test_site_map_is_cached(page_service, make_record_map):
    pages = _build_pages(make_record_map)
    service, _ = _service(page_service, pages)

    first = service.get_site_map()
    calls = len(page_service.client.get_page_calls)
    second = service.get_site_map()

    assert first is second
    assert len(page_service.client.get_page_calls) == calls


def test_duplicate_canonical_ids_keep_first(page_service, make_record_map, caplog):
    pages = _build_pages(make_record_map)
    pages[SUB_PAGE_ID]["block"][SUB_PAGE_ID] = _page(SUB_PAGE_ID, "Home")
    service, _ = _service(page_service, pages)

    with caplog.at_level(logging.WARNING):
        site_map = service.get_site_map()

    assert site_map.canonical_page_map["home"] == ROOT_PAGE_ID
    assert "duplicate canonical page id" in caplog.text


def test_crawl_waits_between_pages(page_service, make_record_map):
    from dataclasses import replace

    pages = _build_pages(make_record_map)
    page_service.site_config = replace(page_service.site_config, site_map_crawl_delay_seconds=1.5)
    page_service.client = DummyNotionClient(pages[ROOT_PAGE_ID], pages=pages)
    sleeps = []
    service = SiteMapService(page_service, sleep=sleeps.append)

    service.crawl(ROOT_PAGE_ID, SPACE_ID)

    assert sleeps and all(delay == 1.5 for delay in sleeps)
