"""
Editor working copy of a post.

Blocks are kept in an ordered list, each under a stable UUID key. Focus is
tracked by key, so inserting, removing or moving other blocks never moves the
focus to a different block. Nothing is validated until ``submit``, which runs
the same pre-checks the editing UI shows and then hands the payload to the
create/update call it is given.
"""

import re
import uuid
from copy import deepcopy
from typing import Any, Callable, Dict, List, Mapping, Optional

from app.models.blocks import BLOCK_TYPES, MEDIA_BLOCK_TYPES
from app.models.post import EXCERPT_MAX_LENGTH, MAX_TAGS, TAG_MAX_LENGTH, TITLE_MAX_LENGTH

_SLUG_STRIP = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SEPARATORS = re.compile(r"[\s_-]+", re.ASCII)


def generate_slug(text: str) -> str:
    slug = _SLUG_STRIP.sub("", text.lower())
    slug = _SLUG_SEPARATORS.sub("-", slug)
    return slug.strip("-")


def default_block(block_type: str) -> Dict[str, Any]:
    if block_type not in BLOCK_TYPES:
        raise ValueError(f"Unknown block type: {block_type}")
    block: Dict[str, Any] = {"type": block_type}
    if block_type != "divider":
        block["content"] = ""
    if block_type == "image":
        block["altText"] = ""
        block["caption"] = ""
    if block_type == "code":
        block["language"] = "javascript"
    if block_type == "embed":
        block["embedType"] = "youtube"
    return block


class EditorError(Exception):
    """A pre-submit check failed; ``block_index`` points at the offending block."""

    def __init__(self, message: str, block_index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.block_index = block_index


class EditorBlock:
    __slots__ = ("key", "fields")

    def __init__(self, fields: Dict[str, Any], key: str = None):
        self.key = key or uuid.uuid4().hex
        self.fields = fields


class PostEditor:
    def __init__(self):
        self.post_id: Optional[int] = None
        self.title = ""
        self.slug = ""
        self.excerpt = ""
        self.cover_image = ""
        self.tags: List[str] = []
        self._blocks: List[EditorBlock] = []
        self._focused_key: Optional[str] = None

    @classmethod
    def from_post(cls, post: Mapping[str, Any]) -> "PostEditor":
        editor = cls()
        editor.post_id = post.get("id")
        editor.title = post.get("title") or ""
        editor.slug = post.get("slug") or ""
        editor.excerpt = post.get("excerpt") or ""
        editor.cover_image = post.get("coverImage") or ""
        editor.tags = list(post.get("tags") or [])
        editor._blocks = [EditorBlock(deepcopy(dict(block))) for block in post.get("content") or []]
        return editor

    @property
    def is_new(self) -> bool:
        return self.post_id is None

    # Block list

    @property
    def blocks(self) -> List[Dict[str, Any]]:
        return [deepcopy(block.fields) for block in self._blocks]

    @property
    def keys(self) -> List[str]:
        return [block.key for block in self._blocks]

    def __len__(self) -> int:
        return len(self._blocks)

    @property
    def focused_index(self) -> Optional[int]:
        for index, block in enumerate(self._blocks):
            if block.key == self._focused_key:
                return index
        return None

    def focus(self, index: int) -> None:
        self._focused_key = self._blocks[index].key

    def blur(self) -> None:
        self._focused_key = None

    def insert(self, block_type: str, at_index: Optional[int] = None) -> str:
        """Insert after ``at_index`` (append when omitted) and focus the new block."""
        block = EditorBlock(default_block(block_type))
        if at_index is None:
            self._blocks.append(block)
        else:
            self._blocks.insert(at_index + 1, block)
        self._focused_key = block.key
        return block.key

    def update(self, index: int, fields: Mapping[str, Any]) -> None:
        block = self._blocks[index]
        block.fields = {**block.fields, **fields}

    def remove(self, index: int) -> None:
        block = self._blocks.pop(index)
        if block.key == self._focused_key:
            self._focused_key = self._blocks[max(0, index - 1)].key if self._blocks else None

    def reorder(self, from_index: int, to_index: int) -> None:
        if not 0 <= to_index < len(self._blocks):
            raise IndexError("reorder target out of range")
        block = self._blocks.pop(from_index)
        self._blocks.insert(to_index, block)

    def set_image(self, index: int, upload: Mapping[str, Any], file_name: str = "") -> None:
        """Apply an image upload result (url, publicId, width, height) to a block."""
        fields = {"url": upload["url"], "publicId": upload["publicId"]}
        if file_name:
            fields["altText"] = file_name.split(".")[0]
        for dimension in ("width", "height"):
            if upload.get(dimension):
                fields[dimension] = upload[dimension]
        self.update(index, fields)

    # Post fields

    def set_title(self, value: str) -> bool:
        if len(value) > TITLE_MAX_LENGTH:
            return False
        self.title = value
        if self.is_new and value:
            self.slug = generate_slug(value)
        return True

    def set_excerpt(self, value: str) -> bool:
        if len(value) > EXCERPT_MAX_LENGTH:
            return False
        self.excerpt = value
        return True

    def toggle_tag(self, tag: str) -> bool:
        if tag in self.tags:
            self.tags.remove(tag)
            return True
        if len(self.tags) >= MAX_TAGS:
            return False
        self.tags.append(tag)
        return True

    # Submit

    def check(self) -> None:
        if not self.title.strip():
            raise EditorError("Title is required")
        if not self.slug.strip():
            raise EditorError("Slug is required")

        for index, block in enumerate(self._blocks):
            fields = block.fields
            block_type = fields.get("type")
            if block_type in MEDIA_BLOCK_TYPES and not fields.get("url"):
                self._fail(f"Block {index + 1} ({block_type}) requires a URL", index)
            if block_type == "code" and not fields.get("language"):
                self._fail(f"Code block {index + 1} requires a language", index)
            if block_type == "embed" and not fields.get("embedType"):
                self._fail(f"Embed block {index + 1} requires an embed type", index)

    def _fail(self, message: str, index: int) -> None:
        self._focused_key = self._blocks[index].key
        raise EditorError(message, block_index=index)

    def build_payload(self, publish: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "content": self.blocks,
            "tags": [tag.lower()[:TAG_MAX_LENGTH] for tag in self.tags],
            "published": publish,
        }
        if self.cover_image:
            payload["coverImage"] = self.cover_image
        return payload

    def submit(self, publish: bool, save: Callable[[Dict[str, Any]], Any]) -> Any:
        """Run the pre-checks, then pass the payload to ``save`` (create or update)."""
        self.check()
        return save(self.build_payload(publish))
