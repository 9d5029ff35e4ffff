# backend/notion_site/__init__.py
"""
Notion public site backend package.

This package contains:
- main: FastAPI application entrypoint
- notion: unofficial Notion API client, post-processing and pagination
- site: site config, site map, page resolution and HTML rendering
"""
