import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from forum_proxy.proxy.models import ExtractedAssets, RewriteContext
from forum_proxy.proxy.rewriter import (
    NEWLINE_ENTITY,
    rewrite_css_urls,
    rewrite_preload_store,
)

logger = logging.getLogger("uvicorn.error")

MAIN_CONTENT_SELECTOR = "#main"
LOGIN_FORM_SELECTOR = "#hidden-login-form"

# The host page ships its own jQuery
SKIPPED_SCRIPT_RE = re.compile(r"^/javascripts/jquery-\d+\.\d+\.\d+(?:\.min)?\.js(?:\?.*)?$")


def resolve_asset_url(url: str, ctx: RewriteContext) -> str:
    """Upstream-relative URLs (a single leading ``/``) become absolute
    against the forum server; anything else is already absolute."""
    if url.startswith("/") and not url.startswith("//"):
        return f"{ctx.server_base}{url}"
    return url


def _is_skipped_script(src: str) -> bool:
    return SKIPPED_SCRIPT_RE.match(src) is not None


def _normalize_inline(text: Optional[str]) -> str:
    return (text or "").replace(NEWLINE_ENTITY, "\n")


def extract_assets(html: str, ctx: RewriteContext) -> ExtractedAssets:
    """
    Pull the embeddable parts out of a full upstream page.

    Missing elements yield empty values, never an error.
    """
    soup = BeautifulSoup(html, "html.parser")
    assets = ExtractedAssets()

    main = soup.select_one(MAIN_CONTENT_SELECTOR)
    if main is not None:
        assets.main_html = main.decode_contents()
    else:
        logger.warning(
            f"[Extractor] No element matches {MAIN_CONTENT_SELECTOR!r}; "
            "embedding an empty fragment"
        )

    login_form = soup.select_one(LOGIN_FORM_SELECTOR)
    if login_form is not None:
        login_form["action"] = f"{ctx.mount_path}/login"
        assets.login_form_html = str(login_form)

    for script in soup.find_all("script"):
        src = script.get("src")
        if src:
            if _is_skipped_script(src):
                logger.debug(f"[Extractor] Skipping local jQuery script {src}")
                continue
            assets.scripts.append(resolve_asset_url(src, ctx))
            continue
        body = _normalize_inline(script.string)
        assets.inline_scripts.append(rewrite_preload_store(body, ctx))

    for link in soup.find_all("link", rel="stylesheet"):
        href = link.get("href")
        if href:
            assets.stylesheets.append(resolve_asset_url(href, ctx))

    for style in soup.find_all("style"):
        assets.inline_styles.append(rewrite_css_urls(style.string or "", ctx))

    csrf = soup.find("meta", attrs={"name": "csrf-token"})
    if csrf is not None:
        assets.csrf_token = csrf.get("content")

    logger.debug(
        f"[Extractor] {len(assets.scripts)} scripts, "
        f"{len(assets.inline_scripts)} inline scripts, "
        f"{len(assets.stylesheets)} stylesheets"
    )
    return assets
