"""
Content block model.

A post body is an ordered list of blocks. Each block is one variant of a
tagged union keyed by ``type``; the variant decides which fields are
required. Every variant tolerates the shared optional keys the editor sends
(an image block arrives with ``content=""``, a paragraph may carry an empty
``url``), but ``publicId`` exists only on image blocks and any other key is
rejected.

Blocks are stored as plain JSON documents (``model_dump(exclude_none=True)``)
so field names keep the camelCase wire spelling.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, StringConstraints, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.functional_validators import AfterValidator
from pydantic_core import PydanticCustomError

BLOCK_TYPES = ("paragraph", "image", "video", "heading", "quote", "code", "divider", "embed")
TEXT_BLOCK_TYPES = ("paragraph", "heading", "quote")
MEDIA_BLOCK_TYPES = ("image", "video", "embed")


class EmbedType(str, Enum):
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    UNKNOWN = "unknown"


_http_url = TypeAdapter(HttpUrl)

def _check_absolute_url(value: str) -> str:
    # Validate only; the stored string is kept exactly as submitted
    try:
        _http_url.validate_python(value)
    except PydanticValidationError:
        raise PydanticCustomError("url_invalid", "must be a valid URL")
    return value


AbsoluteUrl = Annotated[str, AfterValidator(_check_absolute_url)]
NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
Dimension = Annotated[int, Field(gt=0)]


class _Block(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    content: Optional[str] = None
    url: Optional[str] = None
    altText: Optional[str] = None
    caption: Optional[str] = None
    width: Optional[Dimension] = None
    height: Optional[Dimension] = None
    language: Optional[str] = None
    embedType: Optional[str] = None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class ParagraphBlock(_Block):
    type: Literal["paragraph"]
    content: NonEmptyStr


class HeadingBlock(_Block):
    type: Literal["heading"]
    content: NonEmptyStr


class QuoteBlock(_Block):
    type: Literal["quote"]
    content: NonEmptyStr


class CodeBlock(_Block):
    type: Literal["code"]
    content: NonEmptyStr
    language: NonEmptyStr


class ImageBlock(_Block):
    type: Literal["image"]
    url: AbsoluteUrl
    publicId: NonEmptyStr


class VideoBlock(_Block):
    type: Literal["video"]
    url: AbsoluteUrl
    embedType: Optional[EmbedType] = None


class EmbedBlock(_Block):
    type: Literal["embed"]
    url: AbsoluteUrl
    embedType: EmbedType


class DividerBlock(_Block):
    type: Literal["divider"]

    @field_validator("content")
    @classmethod
    def content_must_be_empty(cls, v):
        if v:
            raise PydanticCustomError("content_forbidden", "is not allowed")
        return v


ContentBlock = Annotated[
    Union[
        ParagraphBlock,
        HeadingBlock,
        QuoteBlock,
        CodeBlock,
        ImageBlock,
        VideoBlock,
        EmbedBlock,
        DividerBlock,
    ],
    Field(discriminator="type"),
]

content_blocks_adapter = TypeAdapter(List[ContentBlock])
