"""
Re-encoding of inbound multipart/form-data bodies for the upstream request.

The inbound boundary is reused as-is, the body is rebuilt from the parsed
form fields and uploaded files. Uploaded files are sent with array-style
field names (``attachment[]``) which is what the forum expects.
"""

import logging
from typing import Iterable, List, Tuple

from forum_proxy.proxy.models import UploadedFile

logger = logging.getLogger("uvicorn.error")

CRLF = b"\r\n"


class MultipartBoundaryError(ValueError):
    """The inbound Content-Type does not declare a usable boundary."""


class MultipartEncodingError(OSError):
    """An uploaded temp file could not be read."""


def parse_boundary(content_type: str) -> str:
    if not content_type:
        raise MultipartBoundaryError("Missing Content-Type header")

    for param in content_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.strip().lower() == "boundary":
            boundary = value.strip().strip('"')
            if boundary:
                return boundary
            break
    raise MultipartBoundaryError(
        f"No multipart boundary declared in Content-Type: {content_type!r}"
    )


def _array_field_name(name: str) -> str:
    if name.endswith("[]"):
        name = name[:-2]
    return f"{name}[]"


def read_upload(upload: UploadedFile) -> bytes:
    try:
        upload.stream.seek(0)
        return upload.stream.read()
    except (OSError, ValueError) as e:
        # ValueError is what a closed temp file raises
        raise MultipartEncodingError(
            f"Cannot read uploaded file {upload.filename!r} "
            f"for field {upload.field_name!r}: {e}"
        ) from e


def encode_multipart(
    boundary: str,
    fields: Iterable[Tuple[str, str]],
    files: Iterable[UploadedFile],
) -> bytes:
    """
    Build the multipart body.

    Every file is read before anything is assembled, so a read failure never
    yields a partial body.
    """
    file_parts = [(upload, read_upload(upload)) for upload in files]
    delimiter = f"--{boundary}".encode("utf-8")
    chunks: List[bytes] = []

    for name, value in fields:
        chunks.append(delimiter + CRLF)
        chunks.append(
            f'Content-Disposition: form-data; name="{name}"'.encode("utf-8") + CRLF
        )
        chunks.append(CRLF)
        chunks.append(str(value).encode("utf-8") + CRLF)

    for upload, data in file_parts:
        content_type = upload.content_type or "application/octet-stream"
        chunks.append(delimiter + CRLF)
        chunks.append(
            (
                f'Content-Disposition: form-data; name="{_array_field_name(upload.field_name)}"; '
                f'filename="{upload.filename}"'
            ).encode("utf-8")
            + CRLF
        )
        chunks.append(f"Content-Type: {content_type}".encode("utf-8") + CRLF)
        chunks.append(CRLF)
        chunks.append(data + CRLF + CRLF)

    chunks.append(delimiter + b"--")
    body = b"".join(chunks)
    logger.debug(
        f"[Multipart] Encoded {len(file_parts)} file(s) into {len(body)} bytes"
    )
    return body
