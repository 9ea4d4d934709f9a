"""
Keystone — File Upload Route
==============================

What:  POST /<prefix>/files accepts a multipart/form-data body and returns a
       summary of the received files and fields.
How:   The body is parsed by adapter.read_multipart() so the adapter's
       multipart limits apply (10 fields, 5 files, 6 MB per file). The
       request body schema is declared through openapi_extra because the
       route reads the raw request instead of File() parameters.

Error responses (handled by global exception handlers):
    HTTP 413: Limits exceeded (PayloadTooLargeError)
    HTTP 429: Rate limit exceeded
"""

import logging

from fastapi import APIRouter, Request
from starlette.datastructures import UploadFile

from keystone.adapter import read_multipart
from keystone.schemas.common import ErrorResponse, UploadedFile, UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

_MULTIPART_BODY = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {
                        "files": {
                            "type": "array",
                            "items": {"type": "string", "format": "binary"},
                        }
                    },
                }
            }
        },
    }
}


@router.post(
    "/files",
    response_model=UploadResponse,
    responses={
        413: {"description": "Multipart limits exceeded", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    },
    summary="Upload files",
    description="Accepts up to 5 files of at most 6 MB each and 10 extra fields.",
    openapi_extra=_MULTIPART_BODY,
)
async def upload_files(request: Request) -> UploadResponse:
    form = await read_multipart(request)
    files = []
    fields = {}
    try:
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.append(
                    UploadedFile(
                        field=name,
                        filename=value.filename,
                        content_type=value.content_type,
                        size=value.size or 0,
                    )
                )
            else:
                fields[name] = value
    finally:
        await form.close()

    logger.info("Received upload: %d file(s), %d field(s)", len(files), len(fields))
    return UploadResponse(files=files, fields=fields)
