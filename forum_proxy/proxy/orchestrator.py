"""
Request dispatch for the embedded forum.

Each request takes exactly one of three flows, chosen up front:

- BINARY: uploads and avatars, forwarded byte-for-byte with upstream headers;
- AJAX: non-GET or XHR requests, forwarded with upstream headers, only the
  upload URLs in successful JSON replies are rewritten;
- PAGE: everything else; the upstream HTML page is taken apart and its main
  fragment and assets are embedded into the host page.
"""

import logging
from enum import Enum
from typing import Optional

from fastapi import HTTPException
from opentelemetry import trace

from forum_proxy.proxy.extractor import extract_assets
from forum_proxy.proxy.models import IncomingRequest, UpstreamRequestSpec, UpstreamResponse
from forum_proxy.proxy.multipart import MultipartBoundaryError, MultipartEncodingError
from forum_proxy.proxy.path_mapper import first_segment, to_host_redirect, to_upstream_path
from forum_proxy.proxy.request_builder import HOP_BY_HOP_HEADERS, build_upstream_request
from forum_proxy.proxy.response_builder import (
    SERVER_UNAVAILABLE_MESSAGE,
    HostPage,
    ResponseBuilder,
    webfont_css,
)
from forum_proxy.proxy.rewriter import rewrite_fragment, rewrite_upload_urls
from forum_proxy.proxy.upstream_client import (
    UpstreamClient,
    UpstreamError,
    UpstreamTimeoutError,
)
from forum_proxy.settings import ProxySettings
from forum_proxy.utils import mask_cookie
from forum_proxy.utils.exception_logging import log_exception_with_details
from forum_proxy.utils.traced_requests import traced_proxy_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

BINARY_SEGMENTS = {"uploads", "user_avatar", "letter_avatar"}

# httpx hands over a decoded body; the server recomputes the length
DROPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding", "content-length"}

UPLOAD_URL_MARKER = b'"url":"/uploads'


class ProxyFlow(str, Enum):
    BINARY = "binary"
    AJAX = "ajax"
    PAGE = "page"


def select_flow(incoming: IncomingRequest, upstream_path: str) -> ProxyFlow:
    if first_segment(upstream_path) in BINARY_SEGMENTS:
        return ProxyFlow.BINARY
    if incoming.method.upper() != "GET" or incoming.is_xhr:
        return ProxyFlow.AJAX
    return ProxyFlow.PAGE


def forward_headers(upstream: UpstreamResponse, builder: ResponseBuilder) -> None:
    for name, value in upstream.headers:
        if name.lower() in DROPPED_RESPONSE_HEADERS:
            continue
        builder.add_header(name, value)


class ProxyOrchestrator:
    def __init__(self, settings: ProxySettings, client: Optional[UpstreamClient] = None):
        self.settings = settings
        self.ctx = settings.rewrite_context
        self.client = client or UpstreamClient(timeout=settings.proxy_timeout)

    async def handle(self, incoming: IncomingRequest) -> ResponseBuilder:
        if not self.settings.forum_server_base_url:
            raise HTTPException(
                status_code=503,
                detail="FORUM_SERVER_BASE_URL is not configured. Proxy is unavailable.",
            )

        upstream_path = to_upstream_path(
            incoming.raw_path, incoming.host_base_path, incoming.root_path
        )
        flow = select_flow(incoming, upstream_path)

        with traced_proxy_request(
            tracer,
            operation="proxy_request",
            method=incoming.method,
            path=upstream_path,
            start_message=f"[Proxy] {incoming.method} {incoming.raw_path} -> {upstream_path} ({flow.value})",
            extra_attrs={"proxy.flow": flow.value},
        ) as span:
            spec = self._build_request(incoming)
            if flow is ProxyFlow.PAGE:
                builder = await self._page_flow(incoming, spec)
            else:
                builder = await self._passthrough_flow(flow, spec)
            span.set_attribute("proxy.status_code", builder.status_code)
            return builder

    def _build_request(self, incoming: IncomingRequest) -> UpstreamRequestSpec:
        try:
            return build_upstream_request(incoming, self.settings.forum_server_base_url)
        except MultipartBoundaryError as e:
            log_exception_with_details(logger, "[Proxy]", e, level=logging.WARNING)
            raise HTTPException(status_code=400, detail=str(e))
        except MultipartEncodingError as e:
            log_exception_with_details(logger, "[Proxy]", e)
            raise HTTPException(
                status_code=500, detail="Failed to read uploaded file"
            )

    async def _send_or_raise(self, spec: UpstreamRequestSpec) -> UpstreamResponse:
        try:
            return await self.client.send(spec)
        except UpstreamTimeoutError as e:
            log_exception_with_details(logger, "[Proxy]", e)
            raise HTTPException(status_code=504, detail="Gateway timeout")
        except UpstreamError as e:
            log_exception_with_details(logger, "[Proxy]", e)
            raise HTTPException(
                status_code=502, detail="Bad gateway - cannot connect to forum server"
            )

    async def _passthrough_flow(
        self, flow: ProxyFlow, spec: UpstreamRequestSpec
    ) -> ResponseBuilder:
        upstream = await self._send_or_raise(spec)
        builder = ResponseBuilder(status_code=upstream.status_code)
        forward_headers(upstream, builder)

        body = upstream.body
        if (
            flow is ProxyFlow.AJAX
            and upstream.status_code == 200
            and UPLOAD_URL_MARKER in body
        ):
            try:
                body = rewrite_upload_urls(body.decode("utf-8"), self.ctx).encode("utf-8")
            except UnicodeDecodeError:
                logger.warning(f"[Proxy] Non UTF-8 reply from {spec.url}; not rewritten")
        builder.body = body
        return builder

    def host_absolute_base(self, incoming: IncomingRequest) -> str:
        base = self.settings.host_public_url or incoming.host_url
        return f"{base.rstrip('/')}{self.ctx.mount_path}"

    async def _page_flow(
        self, incoming: IncomingRequest, spec: UpstreamRequestSpec
    ) -> ResponseBuilder:
        builder = ResponseBuilder()
        try:
            upstream = await self.client.send(spec)
        except UpstreamError as e:
            log_exception_with_details(logger, "[Proxy]", e)
            builder.page = HostPage(content=SERVER_UNAVAILABLE_MESSAGE)
            return builder

        for cookie in upstream.cookies:
            logger.debug(f"[Proxy] Forwarding cookie {mask_cookie(cookie)}")
            builder.add_cookie(cookie)

        if upstream.is_redirect:
            target = to_host_redirect(
                upstream.redirect_url,
                self.settings.forum_server_base_url,
                self.host_absolute_base(incoming),
            )
            logger.info(
                f"[Proxy] Redirect {upstream.status_code}: {upstream.redirect_url} -> {target}"
            )
            builder.redirect(target, upstream.status_code)
            return builder

        if not upstream.body.strip():
            logger.warning(f"[Proxy] Empty reply from {spec.url}")
            builder.page = HostPage(content=SERVER_UNAVAILABLE_MESSAGE)
            return builder

        assets = extract_assets(upstream.body.decode("utf-8", errors="replace"), self.ctx)
        content = rewrite_fragment(assets.main_html, self.ctx) + rewrite_fragment(
            assets.login_form_html, self.ctx
        )
        builder.page = HostPage(
            content=content,
            scripts=assets.scripts,
            inline_scripts=assets.inline_scripts,
            stylesheets=assets.stylesheets,
            inline_styles=[webfont_css(self.settings.module_asset_path)]
            + assets.inline_styles,
            csrf_token=assets.csrf_token,
            settings={
                "rootURL": self.ctx.mount_path,
                "server": self.ctx.server_base,
                "headerAsBlock": self.settings.embed_header_as_block,
            },
        )
        if upstream.status_code >= 400:
            builder.status_code = upstream.status_code
        return builder
