from dataclasses import dataclass
from functools import lru_cache

from forum_proxy import vars as env
from forum_proxy.proxy.models import RewriteContext


@dataclass(frozen=True)
class ProxySettings:
    """Read-only proxy configuration, shared by every request."""

    forum_server_base_url: str
    forum_root_path: str = "community"
    host_base_path: str = ""
    host_public_url: str = ""
    embed_header_as_block: bool = False
    proxy_timeout: int = 300
    module_asset_path: str = "/static/forum_proxy"

    @property
    def rewrite_context(self) -> RewriteContext:
        return RewriteContext(
            host_base_path=self.host_base_path,
            root_path=self.forum_root_path,
            server_base_url=self.forum_server_base_url,
        )

    @property
    def mount_path(self) -> str:
        return self.rewrite_context.mount_path

    @classmethod
    def from_env(cls) -> "ProxySettings":
        return cls(
            forum_server_base_url=env.FORUM_SERVER_BASE_URL,
            forum_root_path=env.FORUM_ROOT_PATH,
            host_base_path=env.HOST_BASE_PATH,
            host_public_url=env.HOST_PUBLIC_URL,
            embed_header_as_block=env.EMBED_HEADER_AS_BLOCK,
            proxy_timeout=env.PROXY_TIMEOUT,
            module_asset_path=env.MODULE_ASSET_PATH,
        )


@lru_cache(maxsize=1)
def get_settings() -> ProxySettings:
    """Load the settings once; FastAPI routes receive them via ``Depends``."""
    return ProxySettings.from_env()
