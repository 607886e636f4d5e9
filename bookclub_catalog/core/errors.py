from __future__ import annotations


class CatalogError(RuntimeError):
    """
    Base for every error the lookup pipeline surfaces to its caller.

    Controllers map these without knowing the subclass:
      - http_status: status the outer layer should answer with
      - retryable: whether a later identical call may succeed
      - public_message: fixed text safe to show to end users
    """

    http_status = 500
    retryable = False
    public_message = "catalog error"


class CatalogUnavailable(CatalogError):
    http_status = 503
    retryable = True
    public_message = "book catalog is temporarily unavailable"


class CatalogHttpError(CatalogError):
    http_status = 502
    public_message = "book catalog returned an error"

    def __init__(self, status: int, body_preview: str = "") -> None:
        super().__init__(f"catalog responded with status={status}")
        self.status = int(status)
        self.body_preview = body_preview


class CatalogParseError(CatalogError):
    http_status = 502
    public_message = "upstream data error"


class DetailNotCached(CatalogError):
    http_status = 404
    public_message = "book not found"

    def __init__(self, isbn: str) -> None:
        super().__init__(f"no cached detail for isbn={isbn}")
        self.isbn = isbn


class NoPopularBookFound(CatalogError):
    http_status = 404
    public_message = "popular book not found"
