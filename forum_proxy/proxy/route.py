import logging
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from starlette.datastructures import FormData, UploadFile

from forum_proxy.proxy.models import IncomingRequest, UploadedFile
from forum_proxy.proxy.orchestrator import ProxyOrchestrator
from forum_proxy.settings import ProxySettings, get_settings

logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def raw_request_target(request: Request) -> str:
    """Path and query exactly as the client sent them (still percent-encoded)."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


def merged_headers(request: Request) -> Dict[str, str]:
    """Fold repeated request headers into one value per name."""
    headers: Dict[str, str] = {}
    for raw_name, raw_value in request.headers.raw:
        name = raw_name.decode("latin-1").lower()
        value = raw_value.decode("latin-1")
        if name in headers:
            separator = "; " if name == "cookie" else ", "
            headers[name] = f"{headers[name]}{separator}{value}"
        else:
            headers[name] = value
    return headers


def host_url(request: Request) -> str:
    host = request.headers.get("host") or (request.client.host if request.client else "")
    return f"{request.url.scheme}://{host}"


def split_form(form: FormData) -> Tuple[List[Tuple[str, str]], List[UploadedFile]]:
    fields: List[Tuple[str, str]] = []
    files: List[UploadedFile] = []
    for name, value in form.multi_items():
        if isinstance(value, UploadFile):
            # An empty file input is submitted without a filename
            if not value.filename:
                continue
            files.append(
                UploadedFile(
                    field_name=name,
                    filename=value.filename,
                    content_type=value.content_type or "",
                    stream=value.file,
                )
            )
        else:
            fields.append((name, value))
    return fields, files


async def incoming_request(
    request: Request, settings: ProxySettings, form: Optional[FormData] = None
) -> IncomingRequest:
    body = await request.body()
    form_fields = None
    files: List[UploadedFile] = []
    if form is not None:
        form_fields, files = split_form(form)

    return IncomingRequest(
        method=request.method,
        raw_path=raw_request_target(request),
        headers=merged_headers(request),
        body=body,
        form_fields=form_fields,
        files=tuple(files),
        host_url=host_url(request),
        host_base_path=settings.host_base_path,
        root_path=settings.forum_root_path,
    )


def _is_form(request: Request) -> bool:
    content_type = request.headers.get("content-type", "").lower()
    return content_type.startswith(FORM_CONTENT_TYPES)


async def forward_to_forum(request: Request, settings: ProxySettings) -> Response:
    """Translate the Starlette request, run it through the proxy, flush the result."""
    form = None
    # The raw body is read first so it stays available after form parsing
    await request.body()
    if _is_form(request):
        form = await request.form()
    try:
        incoming = await incoming_request(request, settings, form)
        builder = await ProxyOrchestrator(settings).handle(incoming)
        return builder.to_response()
    finally:
        if form is not None:
            await form.close()


async def proxy_all(
    request: Request, settings: ProxySettings = Depends(get_settings)
) -> Response:
    """Catch-all route that proxies all requests to the forum server."""
    return await forward_to_forum(request, settings)


def create_proxy_router(mount_path: str) -> APIRouter:
    """Register the catch-all routes under the forum mount path."""
    router = APIRouter()
    if mount_path:
        router.add_api_route(mount_path, proxy_all, methods=PROXY_METHODS)
    router.add_api_route(f"{mount_path}/{{path:path}}", proxy_all, methods=PROXY_METHODS)
    logger.info(f"Forum proxy mounted at {mount_path or '/'}")
    return router
