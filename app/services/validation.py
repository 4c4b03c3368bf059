"""
Validation engine for post payloads.

Wraps the pydantic models in ``app.models.post`` / ``app.models.blocks`` and
turns their errors into the flat ``[{"field": ..., "message": ...}]`` list the
API returns. Every violation is reported in one pass, each tagged with a
dotted path such as ``content.2.language``.
"""

from typing import Any, Dict, List, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.models.blocks import BLOCK_TYPES, ContentBlock, content_blocks_adapter
from app.models.post import PostCreate, PostUpdate

FIELD_LABELS = {
    "type": "Content block type",
    "content": "Content",
    "url": "URL",
    "publicId": "Public ID",
    "altText": "Alt text",
    "caption": "Caption",
    "width": "Width",
    "height": "Height",
    "language": "Language",
    "embedType": "Embed type",
    "title": "Title",
    "slug": "Slug",
    "excerpt": "Excerpt",
    "coverImage": "Cover image",
    "tags": "Tags",
    "published": "Published",
}

Loc = Tuple[Union[str, int], ...]


def _normalize_loc(loc: Loc) -> Loc:
    # Discriminated unions insert the tag into the path: content.2.code.language
    if len(loc) >= 3 and loc[0] == "content" and isinstance(loc[1], int) and loc[2] in BLOCK_TYPES:
        loc = loc[:2] + loc[3:]
    return loc


def _label(loc: Loc) -> str:
    for part in reversed(loc):
        if isinstance(part, str):
            return FIELD_LABELS.get(part, part)
    return "Value"


def _message(error: Dict[str, Any], label: str) -> str:
    kind = error["type"]
    ctx = error.get("ctx") or {}
    if kind in ("missing", "string_too_short", "null_forbidden", "union_tag_not_found"):
        return f"{label} is required"
    if kind == "string_too_long":
        return f"{label} must be less than or equal to {ctx.get('max_length')} characters"
    if kind == "too_short":
        return f"{label} must contain at least one item"
    if kind == "too_long":
        return f"{label} must contain less than or equal to {ctx.get('max_length')} items"
    if kind == "greater_than":
        return f"{label} must be positive"
    if kind == "string_pattern_mismatch":
        return f"{label} must be valid"
    if kind == "url_invalid":
        return f"{label} must be a valid URL"
    if kind in ("extra_forbidden", "content_forbidden"):
        return f"{label} is not allowed"
    if kind == "enum":
        return f"{label} must be one of {ctx.get('expected')}"
    if kind == "union_tag_invalid":
        return f"{label} must be one of {', '.join(BLOCK_TYPES)}"
    if kind in ("int_type", "int_parsing", "int_from_float", "float_type", "float_parsing"):
        return f"{label} must be a number"
    if kind in ("string_type",):
        return f"{label} must be a string"
    if kind in ("bool_type", "bool_parsing"):
        return f"{label} must be a boolean"
    return f"{label}: {error['msg']}"


def format_errors(exc: PydanticValidationError, prefix: Loc = ()) -> List[Dict[str, str]]:
    details = []
    for error in exc.errors():
        loc = _normalize_loc(tuple(prefix) + tuple(error["loc"]))
        if error["type"] in ("union_tag_invalid", "union_tag_not_found"):
            loc = loc + ("type",)
        details.append({
            "field": ".".join(str(part) for part in loc) or "body",
            "message": _message(error, _label(loc)),
        })
    return details


def validate_blocks(raw_blocks: Sequence[Any]) -> List[ContentBlock]:
    """Validate a candidate block sequence on its own (editor previews, imports)."""
    try:
        return content_blocks_adapter.validate_python(raw_blocks)
    except PydanticValidationError as e:
        raise ValidationError(format_errors(e, prefix=("content",)), message="Invalid content blocks")


def validate_post_create(payload: Any) -> PostCreate:
    try:
        return PostCreate.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(format_errors(e))


def validate_post_update(payload: Any) -> PostUpdate:
    try:
        return PostUpdate.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(format_errors(e))
