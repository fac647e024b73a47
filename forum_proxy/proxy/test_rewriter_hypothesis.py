"""
Property-based tests for the payload rewrite rules using Hypothesis.

Fragments are assembled from href/src/url()/PreloadStore pieces in both quote
styles, mixing upstream-relative values with values that were already
rewritten or point at another host.
"""

from hypothesis import assume, given
from hypothesis import strategies as st

from forum_proxy.proxy.models import RewriteContext
from forum_proxy.proxy.rewriter import (
    rewrite_css_urls,
    rewrite_fragment,
    rewrite_links,
    rewrite_preload_store,
    rewrite_sources,
    rewrite_upload_urls,
)

SERVER = "https://forum.example.com"
CDN = "//cdn.example.com"
CTX = RewriteContext(host_base_path="", root_path="community", server_base_url=SERVER)

segments = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_.", min_size=1, max_size=10)
paths = st.lists(segments, max_size=3).map("/".join)
quotes = st.sampled_from(['"', "'"])
css_quotes = st.sampled_from(['"', "'", ""])


@st.composite
def href_pieces(draw):
    q = draw(quotes)
    prefix = draw(st.sampled_from(["", "/community", CDN]))
    return f"<a href={q}{prefix}/{draw(paths)}{q}>link</a>"


@st.composite
def src_pieces(draw):
    q = draw(quotes)
    prefix = draw(st.sampled_from(["", SERVER, CDN]))
    return f"<img src={q}{prefix}/{draw(paths)}{q}>"


@st.composite
def css_pieces(draw):
    q = draw(css_quotes)
    prefix = draw(st.sampled_from(["", SERVER, CDN]))
    return f"div {{ background: url({q}{prefix}/{draw(paths)}{q}) }}"


@st.composite
def preload_pieces(draw):
    q = draw(st.sampled_from(['"', '\\"']))
    key = draw(st.sampled_from(["logo_url", "logo_small_url"]))
    prefix = draw(st.sampled_from(["", SERVER]))
    return f"PreloadStore.store({q}site{q}, {{{q}{key}{q}:{q}{prefix}/{draw(paths)}.png{q}}});"


fillers = st.sampled_from(["", " ", "\n", "&#10;", "<p>text</p>"])

fragments = st.lists(
    st.one_of(href_pieces(), src_pieces(), css_pieces(), preload_pieces(), fillers),
    max_size=8,
).map("".join)

upload_replies = st.lists(
    st.builds(
        lambda prefix, path: f'{{"url":"{prefix}/uploads/{path}"}}',
        st.sampled_from(["", "/community", SERVER]),
        paths,
    ),
    max_size=4,
).map(lambda items: "[" + ",".join(items) + "]")

REWRITES = [
    rewrite_links,
    rewrite_sources,
    rewrite_css_urls,
    rewrite_preload_store,
    rewrite_fragment,
]


class TestIdempotence:
    @given(fragments)
    def test_each_rewrite_is_idempotent(self, text):
        for rewrite in REWRITES:
            once = rewrite(text, CTX)
            assert rewrite(once, CTX) == once

    @given(upload_replies)
    def test_upload_rewrite_is_idempotent(self, text):
        once = rewrite_upload_urls(text, CTX)
        assert rewrite_upload_urls(once, CTX) == once


class TestOrderIndependence:
    @given(fragments)
    def test_forward_and_backward_order_agree(self, text):
        forward = rewrite_preload_store(
            rewrite_css_urls(rewrite_sources(rewrite_links(text, CTX), CTX), CTX), CTX
        )
        backward = rewrite_links(
            rewrite_sources(rewrite_css_urls(rewrite_preload_store(text, CTX), CTX), CTX), CTX
        )
        assert forward == backward


class TestQuoteStyle:
    @given(quotes, paths)
    def test_href_keeps_quote(self, q, path):
        assume(path.split("/")[0] != "community")
        html = f"<a href={q}/{path}{q}>x</a>"
        assert rewrite_links(html, CTX) == f"<a href={q}/community/{path}{q}>x</a>"

    @given(quotes, paths)
    def test_src_keeps_quote(self, q, path):
        html = f"<img src={q}/{path}{q}>"
        assert rewrite_sources(html, CTX) == f"<img src={q}{SERVER}/{path}{q}>"

    @given(css_quotes, paths)
    def test_css_url_keeps_quote(self, q, path):
        css = f"a {{ background: url({q}/{path}{q}) }}"
        assert rewrite_css_urls(css, CTX) == f"a {{ background: url({q}{SERVER}/{path}{q}) }}"

    @given(st.sampled_from(['"', '\\"']), paths)
    def test_preload_keeps_quote(self, q, path):
        script = f"PreloadStore.store({q}site{q}, {{{q}logo_url{q}:{q}/{path}.png{q}}});"
        expected = f"PreloadStore.store({q}site{q}, {{{q}logo_url{q}:{q}{SERVER}/{path}.png{q}}});"
        assert rewrite_preload_store(script, CTX) == expected

    @given(paths)
    def test_other_hosts_untouched(self, path):
        html = f'<a href="{CDN}/{path}">x</a><img src="{CDN}/{path}">url({CDN}/{path})'
        assert rewrite_fragment(html, CTX) == html
