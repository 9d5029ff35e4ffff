# backend/notion_site/notion/tweets.py

"""
tweet ブロックの埋め込み用データ取得。

X (Twitter) の公開 syndication エンドポイントからツイート本文を取得し、
record map の "tweets" に {tweet_id: tweet | None} として格納する。
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import httpx

from .record_map import RecordMap, get_block_value

logger = logging.getLogger(__name__)

SYNDICATION_URL = "https://cdn.syndication.twimg.com/tweet-result"

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class TweetFetchError(RuntimeError):
    """syndication エンドポイントの呼び出しに失敗した場合の例外。"""


def _to_base36(value: float, max_fraction_digits: int = 12) -> str:
    integer = int(value)
    fraction = value - integer

    digits = ""
    while True:
        integer, rem = divmod(integer, 36)
        digits = _BASE36_DIGITS[rem] + digits
        if integer == 0:
            break

    if fraction > 0:
        digits += "."
        for _ in range(max_fraction_digits):
            fraction *= 36
            digit = int(fraction)
            digits += _BASE36_DIGITS[digit]
            fraction -= digit
            if fraction <= 0:
                break

    return digits


def tweet_token(tweet_id: str) -> str:
    """syndication エンドポイントが要求する token を ID から計算する。"""
    raw = _to_base36((int(tweet_id) / 1e15) * math.pi)
    return raw.replace("0", "").replace(".", "")


def extract_tweet_id(url: Optional[str]) -> Optional[str]:
    """
    ツイート URL から ID を取り出す。

    例: https://twitter.com/user/status/123?s=20 -> "123"
    """
    if not url:
        return None
    last = url.rstrip("/").split("/")[-1].split("?")[0]
    return last if last.isdigit() else None


def collect_tweet_ids(record_map: RecordMap) -> List[str]:
    """record map 内の tweet ブロックからツイート ID を重複なく集める。"""
    tweet_ids: List[str] = []
    for block_id in (record_map.get("block") or {}):
        block = get_block_value(record_map, block_id)
        if not block or block.get("type") != "tweet":
            continue
        try:
            source = block["properties"]["source"][0][0]
        except (KeyError, IndexError, TypeError):
            continue
        tweet_id = extract_tweet_id(source)
        if tweet_id and tweet_id not in tweet_ids:
            tweet_ids.append(tweet_id)
    return tweet_ids


class TweetClient:
    """
    syndication エンドポイントへの HTTP クライアント。
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    def fetch_tweet(self, tweet_id: str) -> Optional[Dict[str, Any]]:
        """
        ツイート 1 件を取得する。

        :return: ツイートの JSON。存在しない・削除済みの場合は None。
        :raises TweetFetchError: 通信エラーや 404 以外のエラー時。
        """
        params = {"id": tweet_id, "lang": "en", "token": tweet_token(tweet_id)}

        try:
            response = httpx.get(SYNDICATION_URL, params=params, timeout=self._timeout)
        except httpx.RequestError as exc:
            raise TweetFetchError(f"Failed to fetch tweet {tweet_id}: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise TweetFetchError(f"Failed to fetch tweet {tweet_id}: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TweetFetchError(f"Failed to decode tweet {tweet_id}") from exc

        if not data or data.get("__typename") == "TweetTombstone":
            return None
        return data


def get_tweets_map(
    record_map: RecordMap,
    *,
    client: Optional[TweetClient] = None,
    concurrency: int = 8,
) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    record map 内のツイートをまとめて取得し、record_map["tweets"] に格納する。

    個別の取得失敗はログに残して None 扱いにする（ページ表示は止めない）。
    """
    client = client or TweetClient()
    tweet_ids = collect_tweet_ids(record_map)

    def _fetch(tweet_id: str) -> Optional[Dict[str, Any]]:
        try:
            return client.fetch_tweet(tweet_id)
        except TweetFetchError as exc:
            logger.warning("Tweet %s could not be embedded: %s", tweet_id, exc)
            return None

    tweets: Dict[str, Optional[Dict[str, Any]]] = {}
    if tweet_ids:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
            tweets = dict(zip(tweet_ids, executor.map(_fetch, tweet_ids)))

    record_map["tweets"] = tweets
    return tweets
