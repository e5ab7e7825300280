from __future__ import annotations


def first_token(query: str) -> str:
    parts = query.split()
    return parts[0].lower() if parts else ""


def choose_entry(query: str, entry_texts: list[str]) -> int | None:
    """Index of the result entry to open for *query*.

    The first entry whose text contains the query's first word wins
    (case-insensitive). With no such entry the first result is used, and with
    no results at all there is nothing to pick.
    """
    if not entry_texts:
        return None

    token = first_token(query)
    if token:
        for i, text in enumerate(entry_texts):
            if token in (text or "").lower():
                return i
    return 0
