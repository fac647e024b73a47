"""
Translation between host-visible paths and upstream forum paths.

All functions work on raw strings; percent-encoding in paths and query
strings is never decoded or re-encoded.
"""

import re


def join_mount_path(host_base_path: str, root_path: str) -> str:
    """Combine the host base path and the forum root segment into ``/a/b``."""
    parts = [p.strip("/") for p in (host_base_path, root_path) if p and p.strip("/")]
    return "/" + "/".join(parts) if parts else ""


def to_upstream_path(incoming_path: str, host_base_path: str, root_path: str) -> str:
    """
    Strip the mount path from an incoming ``path?query`` string.

    Only the first occurrence of the mount path (on a segment boundary) is
    removed. When it does not occur at all the request is treated as a
    request for the forum root. The query string is kept verbatim.
    """
    path, sep, query = incoming_path.partition("?")
    mount = join_mount_path(host_base_path, root_path)

    if not mount:
        remainder = path
    else:
        match = re.search(re.escape(mount) + r"(?=/|$)", path)
        remainder = path[match.end():] if match else ""

    if not remainder.startswith("/"):
        remainder = "/" + remainder
    return f"{remainder}{sep}{query}"


def to_host_redirect(
    upstream_url: str, server_base_url: str, host_absolute_base: str
) -> str:
    """
    Rewrite an upstream ``Location`` so the browser stays on the host site.

    ``host_absolute_base`` is the public host URL including the mount path.
    URLs that point elsewhere are returned unchanged.
    """
    if not upstream_url:
        return upstream_url

    server = server_base_url.rstrip("/")
    host = host_absolute_base.rstrip("/")

    if server and upstream_url.startswith(server):
        rest = upstream_url[len(server):]
        if not rest or rest[0] in "/?#":
            return f"{host}{rest}"
        return upstream_url

    # Root-relative redirect, e.g. "/t/5"
    if upstream_url.startswith("/") and not upstream_url.startswith("//"):
        return f"{host}{upstream_url}"

    return upstream_url


def first_segment(upstream_path: str) -> str:
    path = upstream_path.partition("?")[0]
    return path.lstrip("/").split("/", 1)[0]
