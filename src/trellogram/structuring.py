from __future__ import annotations

import re
from dataclasses import dataclass

URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+\.)(?:\s+|$)")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class StructuredNote:
    title: str
    urls: tuple[str, ...]
    detail_bullets: tuple[str, ...]
    rendered_description: str


def _pull_urls(line: str, urls: list[str]) -> str:
    found = URL_RE.findall(line)
    urls.extend(found)
    return URL_RE.sub(" ", line).strip()


def render_description(
    detail_bullets: tuple[str, ...] | list[str],
    urls: tuple[str, ...] | list[str],
) -> str:
    blocks: list[str] = []
    if detail_bullets:
        blocks.append("\n".join(["Details:", *(f"- {item}" for item in detail_bullets)]))
    if urls:
        blocks.append("\n".join(["Links:", *(f"- {url}" for url in urls)]))
    return "\n\n".join(blocks)


def structure_text(raw: str) -> StructuredNote:
    """Split free text into a card title, detail bullets and links.

    The first non-empty line is the title; every later line becomes a detail
    bullet with its list marker (``-``, ``*``, ``•`` or ``N.``) removed. URLs
    anywhere in the text are moved to the links block.
    """
    lines = [line.strip() for line in raw.splitlines()]
    lines = [line for line in lines if line]
    urls: list[str] = []
    bullets: list[str] = []
    if not lines:
        return StructuredNote(title="", urls=(), detail_bullets=(), rendered_description="")

    title = _pull_urls(lines[0], urls)
    for line in lines[1:]:
        item = _pull_urls(_BULLET_RE.sub("", line, count=1), urls)
        item = _BULLET_RE.sub("", item, count=1).strip()
        if item:
            bullets.append(item)

    title = _SPACE_RE.sub(" ", title).strip()
    if not title:
        # a link-only first line: fall back to the first detail, then the link
        if bullets:
            title = bullets.pop(0)
        elif urls:
            title = urls[0]
    return StructuredNote(
        title=title,
        urls=tuple(urls),
        detail_bullets=tuple(bullets),
        rendered_description=render_description(bullets, urls),
    )
