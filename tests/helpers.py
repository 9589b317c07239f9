"""Helpers shared by unit and integration tests."""
from fastapi.testclient import TestClient

from launchpad.db.connection import get_connection

SAMPLE_HTML = """
<html>
  <head>
    <title>Example Product</title>
    <meta name="description" content="A product that does useful things for people.">
    <meta property="og:image" content="/static/cover.png">
    <link rel="icon" href="/favicon.png" type="image/png">
  </head>
  <body><img src="/shot.png" alt="screenshot" width="640" height="480"></body>
</html>
"""


def sample_metadata(url: str = "https://example.com/product", title: str | None = "Example Product") -> dict:
    return {
        "url": url,
        "title": title,
        "description": "A product that does useful things for people.",
        "image": "https://example.com/static/cover.png",
        "favicon": "https://example.com/favicon.png",
        "images": {
            "primary": "https://example.com/static/cover.png",
            "sources": [{"url": "https://example.com/static/cover.png", "type": "og:image", "priority": 10}],
        },
        "favicons": [{"url": "https://example.com/favicon.png", "type": "icon"}],
        "openGraph": {},
        "twitter": {},
        "structuredData": {"jsonLd": [], "microdata": []},
        "contentType": "website",
    }


def auth_header(client: TestClient, user_id: str) -> dict:
    token = client.app.state.auth_service.issue_user_token(user_id)
    return {"Authorization": f"Bearer {token}"}


def count_rows(db_path: str, table: str, where: str = "1=1", params: tuple = ()) -> int:
    with get_connection(db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table} WHERE {where}", params).fetchone()[0]
