"""Urban Dictionary definitions."""

from __future__ import annotations

import httpx

URBAN_URL = "https://api.urbandictionary.com/v0/define"
DEFINITION_LIMIT = 500


def _strip_brackets(text: str) -> str:
    return text.replace("[", "").replace("]", "")


async def get_urban_definition(client: httpx.AsyncClient, term: str) -> str:
    resp = await client.get(URBAN_URL, params={"term": term})
    resp.raise_for_status()
    entries = resp.json().get("list") or []
    if not entries:
        return "No definition found for that term."

    entry = entries[0]
    definition = _strip_brackets(entry.get("definition", ""))
    if len(definition) > DEFINITION_LIMIT:
        definition = definition[: DEFINITION_LIMIT - 3] + "..."
    example = _strip_brackets(entry.get("example", ""))
    return f"📚 **Urban Dictionary: {entry.get('word', term)}**\n\n{definition}\n\n*Example: {example}*"
