# backend/notion_site/main.py

"""
公開サイト バックエンドのエントリーポイント。

- / と /{page_slug} で Notion ページを HTML として配信する
- /api/load-more でコレクションの続きを JSON で返す
- /api/search-notion で Notion 検索を中継する
"""

from fastapi import FastAPI

from notion_site.notion.router import router as notion_router
from notion_site.site.router import router as site_router


def create_app() -> FastAPI:
    """
    FastAPI アプリケーションファクトリ。

    - ヘルスチェックエンドポイント (/health)
    - Notion API 中継エンドポイント (/api/load-more, /api/search-notion)
    - ページ配信 (/, /sitemap.xml, /{page_slug})
    """
    app = FastAPI(title="Notion Public Site")

    @app.get("/health", tags=["health"])
    def health_check() -> dict:
        """
        簡易ヘルスチェックエンドポイント。
        モニタリングや動作確認用。
        """
        return {"status": "ok"}

    # /{page_slug} が他のパスを飲み込まないよう、サイトのルーターは最後に登録する
    app.include_router(notion_router)
    app.include_router(site_router)

    return app


# uvicorn 実行時のエントリーポイント
app = create_app()
