import logging

import httpx
from opentelemetry import trace

from forum_proxy.proxy.models import UpstreamRequestSpec, UpstreamResponse

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")


class UpstreamError(Exception):
    """The forum server could not be reached."""

    def __init__(self, message: str, url: str = ""):
        self.message = message
        self.url = url
        super().__init__(message)


class UpstreamTimeoutError(UpstreamError):
    pass


class UpstreamUnavailableError(UpstreamError):
    pass


class UpstreamClient:
    """Issues exactly one upstream call per incoming request."""

    def __init__(self, timeout: float = 300):
        self.timeout = timeout

    async def send(self, spec: UpstreamRequestSpec) -> UpstreamResponse:
        with tracer.start_as_current_span("upstream_request") as span:
            span.set_attribute("upstream.url", spec.url)
            span.set_attribute("upstream.method", spec.method)
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=spec.max_redirects > 0,
                    max_redirects=spec.max_redirects,
                ) as client:
                    response = await client.request(
                        method=spec.method,
                        url=spec.url,
                        headers=spec.headers,
                        content=spec.body,
                    )
            except httpx.TimeoutException as e:
                logger.error(f"Upstream timeout for {spec.url}: {e}")
                span.set_attribute("upstream.error", "timeout")
                raise UpstreamTimeoutError(f"Upstream timeout: {e}", spec.url) from e
            except httpx.TransportError as e:
                logger.error(f"Failed to connect to upstream {spec.url}: {e}")
                span.set_attribute("upstream.error", "connection_failed")
                raise UpstreamUnavailableError(
                    f"Upstream unavailable: {e}", spec.url
                ) from e
            except httpx.RequestError as e:
                # e.g. DecodingError on a broken gzip/br body
                logger.error(f"Unusable reply from upstream {spec.url}: {e}")
                span.set_attribute("upstream.error", "bad_response")
                raise UpstreamUnavailableError(
                    f"Upstream unavailable: {e}", spec.url
                ) from e

            span.set_attribute("upstream.status_code", response.status_code)
            return to_upstream_response(response)


def to_upstream_response(response: httpx.Response) -> UpstreamResponse:
    headers = list(response.headers.multi_items())
    redirect_url = None
    if 300 <= response.status_code < 400:
        redirect_url = response.headers.get("location") or None
    return UpstreamResponse(
        status_code=response.status_code,
        headers=headers,
        body=response.content or b"",
        redirect_url=redirect_url,
    )
