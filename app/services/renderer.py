"""
Content renderer.

Maps stored content blocks to display nodes. Rendering is pure and never
raises: a block of an unknown type produces no node, an embed whose URL
cannot be converted produces an ``invalid_embed`` placeholder.

Text blocks (paragraph, heading, quote) go through a sanitising allow-list:
every tag is escaped except ``<b>``, ``<i>``, ``<code>`` and line breaks,
which become ``<strong>``, ``<em>``, inline ``<code>`` and ``<br />``.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import bleach
from pydantic import BaseModel

from app.models.blocks import TEXT_BLOCK_TYPES, EmbedType

INLINE_TAGS = frozenset(["b", "i", "code", "br"])
DEFAULT_CODE_LANGUAGE = "javascript"
INVALID_EMBED_TEXT = "Invalid embed URL"

YOUTUBE_ID = re.compile(r"(?:youtube\.com/(?:.*v=|.*shorts/)|youtu\.be/)([^\"&?/\s]{11})")
TIKTOK_ID = re.compile(r"/video/(\d+)")

_BOLD = re.compile(r"<b>(.*?)</b>", re.S)
_ITALIC = re.compile(r"<i>(.*?)</i>", re.S)
_BREAK = re.compile(r"<br\s*/?>")


class RenderNode(BaseModel):
    kind: str
    html: Optional[str] = None
    src: Optional[str] = None
    alt: Optional[str] = None
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    language: Optional[str] = None
    code: Optional[str] = None
    copyable: Optional[bool] = None
    embed_url: Optional[str] = None
    platform: Optional[str] = None
    source_url: Optional[str] = None
    message: Optional[str] = None


def render_inline(text: str) -> str:
    cleaned = bleach.clean(text, tags=INLINE_TAGS, attributes={}, strip=False)
    cleaned = _BOLD.sub(r"<strong>\1</strong>", cleaned)
    cleaned = _ITALIC.sub(r"<em>\1</em>", cleaned)
    cleaned = _BREAK.sub("<br />", cleaned)
    return cleaned.replace("\r\n", "\n").replace("\n", "<br />")


def detect_platform(url: str) -> str:
    if "youtube.com" in url or "youtu.be" in url:
        return EmbedType.YOUTUBE.value
    if "tiktok.com" in url:
        return EmbedType.TIKTOK.value
    return EmbedType.UNKNOWN.value


def derive_embed_url(url: str, embed_type: Optional[str]) -> Optional[str]:
    if embed_type == EmbedType.YOUTUBE.value:
        match = YOUTUBE_ID.search(url)
        return f"https://www.youtube.com/embed/{match.group(1)}" if match else None
    if embed_type == EmbedType.TIKTOK.value:
        match = TIKTOK_ID.search(url)
        return f"https://www.tiktok.com/embed/v2/{match.group(1)}" if match else None
    return None


def _text(block: Mapping[str, Any], key: str) -> str:
    value = block.get(key)
    return value if isinstance(value, str) else ""


def _optional(block: Mapping[str, Any], key: str) -> Optional[str]:
    return _text(block, key) or None


def _dimension(block: Mapping[str, Any], key: str) -> Optional[int]:
    value = block.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) and value > 0 else None


def _render_text(block: Mapping[str, Any]) -> List[RenderNode]:
    return [RenderNode(kind=block["type"], html=render_inline(_text(block, "content")))]


def _render_image(block: Mapping[str, Any]) -> List[RenderNode]:
    if not _text(block, "url"):
        return []
    return [RenderNode(
        kind="image",
        src=_text(block, "url"),
        alt=_text(block, "altText"),
        caption=_optional(block, "caption"),
        width=_dimension(block, "width"),
        height=_dimension(block, "height"),
    )]


def _render_code(block: Mapping[str, Any]) -> List[RenderNode]:
    return [RenderNode(
        kind="code",
        code=_text(block, "content"),
        language=_text(block, "language") or DEFAULT_CODE_LANGUAGE,
        copyable=True,
    )]


def _render_embed(block: Mapping[str, Any]) -> List[RenderNode]:
    url = _text(block, "url") or _text(block, "content")
    embed_type = _text(block, "embedType")
    if not embed_type and block["type"] == "video":
        embed_type = detect_platform(url)
    embed_type = embed_type or EmbedType.UNKNOWN.value

    embed_url = derive_embed_url(url, embed_type)
    if embed_url is None:
        return [RenderNode(
            kind="invalid_embed",
            source_url=url or None,
            platform=embed_type,
            caption=_optional(block, "caption"),
            message=INVALID_EMBED_TEXT,
        )]
    return [RenderNode(
        kind="embed",
        embed_url=embed_url,
        platform=embed_type,
        source_url=url,
        caption=_optional(block, "caption"),
    )]


def _render_divider(block: Mapping[str, Any]) -> List[RenderNode]:
    return [RenderNode(kind="divider")]


RENDERERS: Dict[str, Callable[[Mapping[str, Any]], List[RenderNode]]] = {
    **{block_type: _render_text for block_type in TEXT_BLOCK_TYPES},
    "image": _render_image,
    "code": _render_code,
    "video": _render_embed,
    "embed": _render_embed,
    "divider": _render_divider,
}


def render_block(block: Any) -> List[RenderNode]:
    if isinstance(block, BaseModel):
        block = block.model_dump(exclude_none=True)
    if not isinstance(block, Mapping):
        return []
    block_type = block.get("type")
    renderer = RENDERERS.get(block_type) if isinstance(block_type, str) else None
    if renderer is None:
        return []
    return renderer(block)


def render_content(blocks: Iterable[Any]) -> List[RenderNode]:
    nodes = []
    for block in blocks:
        nodes.extend(render_block(block))
    return nodes
