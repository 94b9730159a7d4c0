from typing import Any, Dict, Optional


class ArticleServiceError(Exception):
    """Base class for errors surfaced to callers of the article service."""

    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.message, **self.context}


class BadRequestError(ArticleServiceError):
    status_code = 400


class BadRegionError(BadRequestError):
    pass


class UnauthorizedError(ArticleServiceError):
    """Caller lacks the privilege for the requested filter or action."""

    status_code = 403


class NotFoundError(ArticleServiceError):
    status_code = 404


class QueuePublishError(ArticleServiceError):
    status_code = 503
