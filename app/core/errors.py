from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class BlogAPIError(HTTPException):
    """Base for errors raised by the services and rendered as a JSON envelope."""

    error = "Server error"

    def __init__(self, message: str, status_code: int, details: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.details = details


class ValidationError(BlogAPIError):
    error = "Validation failed"

    def __init__(self, details: List[Dict[str, str]], message: str = "Invalid post data"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details=details)

    @property
    def fields(self) -> List[str]:
        return [d["field"] for d in self.details]


class AuthenticationError(BlogAPIError):
    error = "Unauthorized"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message,
            status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(BlogAPIError):
    error = "Forbidden"

    def __init__(self, message: str = "Admin privileges required"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(BlogAPIError):
    error = "Not found"

    def __init__(self, message: str = "Post not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(BlogAPIError):
    error = "Conflict"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, status.HTTP_409_CONFLICT, details=details)


class UpstreamError(BlogAPIError):
    error = "Upstream failure"

    def __init__(self, message: str = "Storage service failed"):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


def error_body(exc: BlogAPIError) -> Dict[str, Any]:
    return {
        "success": False,
        "error": exc.error,
        "message": exc.message,
        "details": exc.details,
        "statusCode": exc.status_code,
    }


async def blog_error_handler(request: Request, exc: BlogAPIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=exc.headers)
