"""
公開サイトとしての振る舞い。

- config: ルートページ・サイト名・ナビゲーション等の設定値
- site_map: 公開ページの一覧と URL スラッグの対応表
- resolver: URL パス → Notion ページの解決
- render: Jinja2 による HTML 描画
- router: /, /sitemap.xml, /{page_slug}
"""
