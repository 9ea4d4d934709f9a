"""
Keystone — HTTP Adapter Configuration
=======================================

What:  Server-adapter settings applied to the ASGI app: trusted proxy headers
       and multipart upload limits.
How:   - uvicorn's ProxyHeadersMiddleware rewrites the client address and
         scheme from X-Forwarded-For / X-Forwarded-Proto, so the rate limiter
         sees the real client behind a load balancer.
       - MultipartLimits caps fields, files and per-file size. read_multipart()
         enforces them while the body streams in:
             1. Content-Length above the largest acceptable body → 413 before
                any byte is read
             2. file part growing past file_size → parsing stops at that
                chunk, spooled files are closed, 413
             3. too many files or fields → 413
Who:   create_app() calls configure_adapter() after every other middleware so
       proxy rewriting is the outermost layer.
"""

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional, Union

from fastapi import FastAPI
from starlette.datastructures import FormData, Headers
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import Request
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from keystone.exceptions import PayloadTooLargeError

logger = logging.getLogger(__name__)

# Starlette's own cap for a non-file part
FIELD_SIZE = 1024 * 1024

# Boundaries and part headers
BODY_OVERHEAD = 64 * 1024


@dataclass(frozen=True)
class MultipartLimits:
    """
    Upload limits for multipart/form-data bodies.

    Attributes:
        fields:     Max number of non-file fields
        file_size:  Max bytes per file (6 MB)
        files:      Max number of file fields
    """

    fields: int = 10
    file_size: int = 6 * 1024 * 1024
    files: int = 5

    @property
    def max_body(self) -> int:
        """Largest body that can still satisfy every limit."""
        return self.files * self.file_size + self.fields * FIELD_SIZE + BODY_OVERHEAD


DEFAULT_LIMITS = MultipartLimits()


class FileTooLarge(MultiPartException):
    def __init__(self, field: str, filename: Optional[str], limit: int):
        super().__init__(f"File '{filename}' exceeds the {limit} byte limit")
        self.field = field
        self.filename = filename


class LimitedMultiPartParser(MultiPartParser):
    """
    Starlette's multipart parser with a byte cap on each file part.

    The cap is checked as each chunk arrives, so an oversized file stops the
    stream at the chunk that crosses the limit.
    """

    def __init__(
        self,
        headers: Headers,
        stream: AsyncGenerator[bytes, None],
        *,
        max_files: int,
        max_fields: int,
        max_file_size: int,
    ):
        super().__init__(headers, stream, max_files=max_files, max_fields=max_fields)
        self.max_file_size = max_file_size
        self._part_bytes = 0

    def on_part_begin(self) -> None:
        super().on_part_begin()
        self._part_bytes = 0

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        part = self._current_part
        if part.file is not None:
            self._part_bytes += end - start
            if self._part_bytes > self.max_file_size:
                raise FileTooLarge(part.field_name, part.file.filename, self.max_file_size)
        super().on_part_data(data, start, end)


def configure_adapter(
    app: FastAPI,
    limits: MultipartLimits = DEFAULT_LIMITS,
    trusted_hosts: Union[str, list] = "*",
) -> FastAPI:
    """Trust proxy headers and attach upload limits to the application."""
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=trusted_hosts)
    app.state.multipart_limits = limits
    return app


def get_limits(request: Request) -> MultipartLimits:
    return getattr(request.app.state, "multipart_limits", DEFAULT_LIMITS)


def _count_limits_error(exc: Exception, limits: MultipartLimits) -> PayloadTooLargeError:
    detail = getattr(exc, "message", None) or getattr(exc, "detail", "")
    return PayloadTooLargeError(
        str(detail) or "Multipart limits exceeded",
        limit="files_or_fields",
        context={"max_files": limits.files, "max_fields": limits.fields},
    )


async def read_multipart(request: Request, limits: Optional[MultipartLimits] = None) -> FormData:
    """
    Parse a form body within the adapter limits.

    Raises:
        PayloadTooLargeError: Body larger than any acceptable upload, a file
            over file_size, or too many files/fields.
    """
    limits = limits or get_limits(request)

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > limits.max_body:
        logger.warning(
            "Upload rejected before reading: content-length=%s limit=%d",
            content_length, limits.max_body,
        )
        raise PayloadTooLargeError(
            f"Request body exceeds the {limits.max_body} byte limit",
            limit="content_length",
            context={"content_length": int(content_length), "max_body": limits.max_body},
        )

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        try:
            return await request.form(max_files=limits.files, max_fields=limits.fields)
        except (MultiPartException, HTTPException) as exc:
            raise _count_limits_error(exc, limits) from exc

    parser = LimitedMultiPartParser(
        request.headers,
        request.stream(),
        max_files=limits.files,
        max_fields=limits.fields,
        max_file_size=limits.file_size,
    )
    try:
        return await parser.parse()
    except FileTooLarge as exc:
        logger.warning(
            "Upload rejected: field=%s file=%s limit=%d",
            exc.field, exc.filename, limits.file_size,
        )
        raise PayloadTooLargeError(
            exc.message,
            limit="file_size",
            context={"field": exc.field, "max_file_size": limits.file_size},
        ) from exc
    except MultiPartException as exc:
        raise _count_limits_error(exc, limits) from exc
