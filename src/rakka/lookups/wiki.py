"""Wikipedia page summaries."""

from __future__ import annotations

import re
from urllib.parse import quote

import httpx

WIKI_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/{title}"
USER_AGENT = "RakkaBot/1.0 (chat-bot)"

_HTML_TAG = re.compile(r"<[^>]*>")


async def get_wiki_summary(client: httpx.AsyncClient, query: str) -> str:
    title = quote(query.strip().replace(" ", "_"), safe="")
    resp = await client.get(WIKI_SUMMARY_URL.format(title=title), headers={"User-Agent": USER_AGENT})
    if resp.status_code == 404:
        return "❌ Article not found."
    if resp.status_code != 200:
        return f"❌ Wikipedia API Error: {resp.status_code}"

    data = resp.json()
    display_title = _HTML_TAG.sub("", data.get("displaytitle") or "")
    if data.get("type") == "disambiguation":
        return f"⚠️ **{display_title or query}** is ambiguous. Please be more specific."

    title_text = display_title or (data.get("title") or query).replace("_", " ")
    page = ((data.get("content_urls") or {}).get("desktop") or {}).get("page", "")
    return f"📖 **{title_text}**\n\n{data.get('extract', '')}\n\n🔗 {page}"
