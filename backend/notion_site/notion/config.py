# backend/notion_site/notion/config.py

"""
Notion（非公式 API）連携に必要な設定値をまとめるモジュール。
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from notion_site.utils.config import get_env, get_env_float, get_env_int


@dataclass(frozen=True)
class NotionConfig:
    """Notion 非公式 API 用の設定値コンテナ。"""

    api_base_url: str
    token_v2: Optional[str]
    active_user: Optional[str]
    user_time_zone: str
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 2.0
    retry_backoff_max_seconds: float = 8.0
    image_check_timeout_seconds: float = 5.0
    image_check_concurrency: int = 1
    tweet_fetch_concurrency: int = 8


@lru_cache()
def get_notion_config() -> NotionConfig:
    """
    環境変数から Notion 設定を読み込む。

    公開ページのみを扱う前提なので必須項目はない。

    任意:
      - NOTION_API_BASE_URL  (デフォルト: https://www.notion.so/api/v3)
      - NOTION_TOKEN_V2      (非公開ページを読む場合の token_v2 クッキー)
      - NOTION_ACTIVE_USER   (x-notion-active-user-header)
      - NOTION_USER_TIME_ZONE (デフォルト: America/New_York)
      - NOTION_TIMEOUT_SECONDS / NOTION_MAX_RETRIES
      - NOTION_RETRY_BACKOFF_SECONDS / NOTION_RETRY_BACKOFF_MAX_SECONDS
      - IMAGE_CHECK_TIMEOUT_SECONDS / IMAGE_CHECK_CONCURRENCY
      - TWEET_FETCH_CONCURRENCY
    """
    return NotionConfig(
        api_base_url=get_env(
            "NOTION_API_BASE_URL",
            default="https://www.notion.so/api/v3",
            required=False,
        ),
        token_v2=get_env("NOTION_TOKEN_V2", required=False),
        active_user=get_env("NOTION_ACTIVE_USER", required=False),
        user_time_zone=get_env(
            "NOTION_USER_TIME_ZONE",
            default="America/New_York",
            required=False,
        ),
        timeout_seconds=get_env_float("NOTION_TIMEOUT_SECONDS", 30.0),
        max_retries=max(1, get_env_int("NOTION_MAX_RETRIES", 3)),
        retry_backoff_seconds=get_env_float("NOTION_RETRY_BACKOFF_SECONDS", 2.0),
        retry_backoff_max_seconds=get_env_float("NOTION_RETRY_BACKOFF_MAX_SECONDS", 8.0),
        image_check_timeout_seconds=get_env_float("IMAGE_CHECK_TIMEOUT_SECONDS", 5.0),
        image_check_concurrency=max(1, get_env_int("IMAGE_CHECK_CONCURRENCY", 1)),
        tweet_fetch_concurrency=max(1, get_env_int("TWEET_FETCH_CONCURRENCY", 8)),
    )
