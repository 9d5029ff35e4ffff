# backend/notion_site/notion/__init__.py

"""
Notion 連携用モジュール群。

主な責務:
- 非公式 API からページの record map を取得する
- リンク切れ画像・ツイート・ナビゲーションの後処理を行う
- コレクションをページ分割する
"""
