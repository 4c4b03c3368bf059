# Import all models to register them with SQLModel
from app.models.user import User, UserRole
from app.models.post import Post, PostTag
from app.models.blocks import ContentBlock, EmbedType, BLOCK_TYPES

__all__ = [
    "User",
    "UserRole",
    "Post",
    "PostTag",
    "ContentBlock",
    "EmbedType",
    "BLOCK_TYPES",
]
