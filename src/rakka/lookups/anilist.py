"""AniList GraphQL lookups for anime and manga."""

from __future__ import annotations

from typing import Any

import httpx

ANILIST_URL = "https://graphql.anilist.co"

_MEDIA_QUERY = """
query ($search: String, $type: MediaType) {
    Media (search: $search, type: $type) {
        title { romaji english }
        description
        averageScore
        episodes
        chapters
        volumes
        status
        siteUrl
    }
}
"""

DESCRIPTION_LIMIT = 400


def _clean_description(description: str | None) -> str:
    desc = (description or "").replace("<br>", "\n").replace("<i>", "_").replace("</i>", "_")
    if len(desc) > DESCRIPTION_LIMIT:
        desc = desc[: DESCRIPTION_LIMIT - 3] + "..."
    return desc


async def _fetch_media(client: httpx.AsyncClient, search: str, media_type: str) -> dict[str, Any] | None:
    resp = await client.post(
        ANILIST_URL,
        json={"query": _MEDIA_QUERY, "variables": {"search": search, "type": media_type}},
    )
    # AniList answers 404 with an errors body when nothing matches
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    media = ((resp.json().get("data") or {}).get("Media")) or None
    if not media or not media.get("siteUrl"):
        return None
    return media


def _title(media: dict[str, Any]) -> str:
    title = media.get("title") or {}
    return title.get("english") or title.get("romaji") or "Unknown"


async def get_anime_info(client: httpx.AsyncClient, search: str) -> str:
    media = await _fetch_media(client, search, "ANIME")
    if media is None:
        return "Anime not found."
    return (
        f"🎬 **{_title(media)}**\n"
        f"Score: {media.get('averageScore') or 0}/100 | Eps: {media.get('episodes') or 0} "
        f"| Status: {media.get('status') or 'UNKNOWN'}\n\n"
        f"{_clean_description(media.get('description'))}\n\n🔗 {media['siteUrl']}"
    )


async def get_manga_info(client: httpx.AsyncClient, search: str) -> str:
    media = await _fetch_media(client, search, "MANGA")
    if media is None:
        return "Manga not found."
    return (
        f"📖 **{_title(media)}**\n"
        f"Score: {media.get('averageScore') or 0}/100 | Vol: {media.get('volumes') or 0} "
        f"| Ch: {media.get('chapters') or 0} | Status: {media.get('status') or 'UNKNOWN'}\n\n"
        f"{_clean_description(media.get('description'))}\n\n🔗 {media['siteUrl']}"
    )
