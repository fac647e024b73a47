"""
Collects every effect a proxied request has on the outgoing response and
flushes them once into a Starlette response.
"""

import html
import json
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from fastapi.responses import HTMLResponse, RedirectResponse, Response

# (family, path below the module asset directory)
WEBFONTS = (
    ("FontAwesome", "fonts/fontawesome-webfont.woff"),
    ("Open Sans", "fonts/OpenSans-Regular-webfont.woff"),
)

SETTINGS_GLOBAL = "forumEmbedSettings"
SERVER_UNAVAILABLE_MESSAGE = (
    '<div class="forum-unavailable">'
    "The forum server is not available at the moment. Please try again later."
    "</div>"
)


def webfont_css(module_asset_path: str) -> str:
    base = module_asset_path.rstrip("/")
    rules = []
    for family, path in WEBFONTS:
        rules.append(
            "@font-face {"
            f" font-family: '{family}';"
            f" src: url('{base}/{path}') format('woff');"
            " font-weight: normal; font-style: normal; }"
        )
    return "\n".join(rules)


@dataclass
class HostPage:
    """The forum fragment plus the assets it needs on the host page."""

    content: str = ""
    scripts: List[str] = field(default_factory=list)
    inline_scripts: List[str] = field(default_factory=list)
    stylesheets: List[str] = field(default_factory=list)
    inline_styles: List[str] = field(default_factory=list)
    csrf_token: Optional[str] = None
    settings: dict = field(default_factory=dict)

    def render(self) -> str:
        parts = []
        if self.csrf_token is not None:
            parts.append(
                f'<meta name="csrf-token" content="{html.escape(self.csrf_token)}">'
            )
        for href in self.stylesheets:
            parts.append(
                f'<link rel="stylesheet" type="text/css" href="{html.escape(href)}">'
            )
        for css in self.inline_styles:
            parts.append(f"<style>{css}</style>")
        if self.settings:
            parts.append(
                f"<script>window.{SETTINGS_GLOBAL} = {json.dumps(self.settings)};</script>"
            )
        for src in self.scripts:
            parts.append(f'<script src="{html.escape(src)}"></script>')
        for body in self.inline_scripts:
            parts.append(f"<script>{body}</script>")
        parts.append(self.content)
        return "\n".join(parts)


@dataclass
class ResponseBuilder:
    status_code: int = 200
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    redirect_url: Optional[str] = None
    page: Optional[HostPage] = None

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def add_cookie(self, set_cookie: str) -> None:
        self.headers.append(("Set-Cookie", set_cookie))

    def redirect(self, url: str, status_code: int) -> None:
        self.redirect_url = url
        self.status_code = status_code

    def to_response(self) -> Response:
        if self.redirect_url:
            response: Response = RedirectResponse(
                self.redirect_url, status_code=self.status_code
            )
        elif self.page is not None:
            response = HTMLResponse(self.page.render(), status_code=self.status_code)
        else:
            response = Response(content=self.body, status_code=self.status_code)

        for name, value in self.headers:
            response.headers.append(name, value)
        return response
