import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "forum-embed-proxy")

FORUM_SERVER_BASE_URL = os.environ.get("FORUM_SERVER_BASE_URL", "").rstrip("/")
FORUM_ROOT_PATH = os.environ.get("FORUM_ROOT_PATH", "community").strip("/")
HOST_BASE_PATH = os.environ.get("HOST_BASE_PATH", "").rstrip("/")
# Public-facing URL of the host site, used when translating redirects
HOST_PUBLIC_URL = os.environ.get("HOST_PUBLIC_URL", "").rstrip("/")
EMBED_HEADER_AS_BLOCK = (
    os.environ.get("EMBED_HEADER_AS_BLOCK", "false").lower() == "true"
)

PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "300"))  # 5 minutes default
MODULE_ASSET_PATH = os.environ.get("MODULE_ASSET_PATH", "/static/forum_proxy").rstrip(
    "/"
)

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
