import logging
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from forum_proxy.proxy.models import IncomingRequest, UpstreamRequestSpec
from forum_proxy.proxy.multipart import encode_multipart, parse_boundary
from forum_proxy.proxy.path_mapper import to_upstream_path

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Recomputed for the upstream request by httpx
RECOMPUTED_HEADERS = {"host", "content-length", "accept-encoding"}

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def normalize_header_name(name: str) -> str:
    """``x-requested-with`` -> ``X-Requested-With``."""
    return "-".join(part.capitalize() for part in name.replace("_", "-").split("-"))


def prepare_headers(incoming: IncomingRequest) -> Dict[str, str]:
    headers = {}
    for name, value in incoming.headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in RECOMPUTED_HEADERS:
            continue
        headers[normalize_header_name(name)] = value
    return headers


def select_body(
    incoming: IncomingRequest, headers: Dict[str, str]
) -> Tuple[Optional[bytes], Dict[str, str]]:
    """
    Pick the upstream body, in priority order: uploaded files, POSTed form
    fields, raw PUT/DELETE payload. Returns the body and the adjusted headers.
    """
    method = incoming.method.upper()
    headers = dict(headers)

    if incoming.files:
        boundary = parse_boundary(incoming.header("Content-Type") or "")
        body = encode_multipart(boundary, incoming.form_fields or [], incoming.files)
        headers["Content-Length"] = str(len(body))
        return body, headers

    if method == "POST":
        if incoming.form_fields is None:
            # Not a form submission (e.g. JSON); forward as received
            return incoming.body, headers
        headers["Content-Type"] = FORM_CONTENT_TYPE
        return urlencode(incoming.form_fields).encode("utf-8"), headers

    if method in ("PUT", "DELETE"):
        return incoming.body, headers

    return None, headers


def build_upstream_request(
    incoming: IncomingRequest, server_base_url: str
) -> UpstreamRequestSpec:
    upstream_path = to_upstream_path(
        incoming.raw_path, incoming.host_base_path, incoming.root_path
    )
    body, headers = select_body(incoming, prepare_headers(incoming))
    url = f"{server_base_url.rstrip('/')}{upstream_path}"
    logger.debug(
        f"[RequestBuilder] {incoming.method} {incoming.raw_path} -> {url} "
        f"(body={len(body) if body is not None else 'none'})"
    )
    # Redirects are translated for the browser, never followed
    return UpstreamRequestSpec(
        method=incoming.method.upper(),
        url=url,
        headers=headers,
        body=body,
        max_redirects=0,
    )
