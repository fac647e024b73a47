"""
Targeted string rewrites applied to upstream HTML, CSS and JS payloads.

The rewrites deliberately do not re-parse and re-serialise markup: they only
touch the attribute or literal they target, so the rest of the upstream
payload reaches the browser byte-for-byte.

Invariants shared by every function here:
- pure: output depends only on the input text and the RewriteContext;
- idempotent: applying a rewrite to its own output changes nothing;
- quote style of the rewritten attribute or literal is preserved;
- protocol-relative URLs (``//cdn.example.com/...``) are left alone.
"""

import re

from forum_proxy.proxy.models import RewriteContext

PRELOAD_STORE_MARKER = "PreloadStore.store"
NEWLINE_ENTITY = "&#10;"

_HREF_RE_TEMPLATE = r"(\bhref=)([\"'])/(?!/)(?!{mount}(?:[/?#]|\2))"
_SRC_RE = re.compile(r"(\bsrc=)([\"'])/(?!/)")
_CSS_URL_RE = re.compile(r"(\burl\()([\"']?)/(?!/)")
_PRELOAD_LOGO_RE = re.compile(
    r"(\\?\"(?:logo_url|logo_small_url)\\?\"\s*:\s*\\?\")/(?!/)"
)
_UPLOAD_URL_RE = re.compile(r"(\"url\"\s*:\s*\")/uploads(?=[/\"])")


def rewrite_links(text: str, ctx: RewriteContext) -> str:
    """``href="/t/1"`` -> ``href="<mount>/t/1"``; links already under the
    mount path are skipped."""
    mount = ctx.mount_path
    if not text or not mount:
        return text
    pattern = re.compile(_HREF_RE_TEMPLATE.format(mount=re.escape(mount.lstrip("/"))))
    return pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{mount}/", text)


def rewrite_sources(text: str, ctx: RewriteContext) -> str:
    """``src="/img.png"`` -> ``src="<server>/img.png"`` so media keeps
    loading from the forum server."""
    server = ctx.server_base
    if not text or not server:
        return text
    return _SRC_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{server}/", text)


def rewrite_css_urls(text: str, ctx: RewriteContext) -> str:
    """``url('/x.png')`` -> ``url('<server>/x.png')``. Also turns the
    ``&#10;`` entity left in extracted inline text back into a newline."""
    if not text:
        return text
    text = text.replace(NEWLINE_ENTITY, "\n")
    server = ctx.server_base
    if not server:
        return text
    return _CSS_URL_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{server}/", text)


def rewrite_preload_store(text: str, ctx: RewriteContext) -> str:
    """Make ``logo_url``/``logo_small_url`` in the PreloadStore payload
    absolute against the forum server. Other scripts pass through."""
    server = ctx.server_base
    if not text or not server or PRELOAD_STORE_MARKER not in text:
        return text
    return _PRELOAD_LOGO_RE.sub(lambda m: f"{m.group(1)}{server}/", text)


def rewrite_upload_urls(text: str, ctx: RewriteContext) -> str:
    """``"url":"/uploads/..."`` in JSON replies -> host-relative upload path."""
    mount = ctx.mount_path
    if not text or not mount:
        return text
    return _UPLOAD_URL_RE.sub(lambda m: f"{m.group(1)}{mount}/uploads", text)


def rewrite_fragment(text: str, ctx: RewriteContext) -> str:
    text = rewrite_links(text, ctx)
    text = rewrite_sources(text, ctx)
    return rewrite_css_urls(text, ctx)
