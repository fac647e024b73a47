from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Tuple

from forum_proxy.proxy.path_mapper import join_mount_path


@dataclass(frozen=True)
class RewriteContext:
    """The three values every rewrite rule needs, constant per request."""

    host_base_path: str
    root_path: str
    server_base_url: str

    @property
    def mount_path(self) -> str:
        """Host-side path the forum lives under, e.g. ``/community``.

        Empty when the forum is mounted at the host root.
        """
        return join_mount_path(self.host_base_path, self.root_path)

    @property
    def server_base(self) -> str:
        return self.server_base_url.rstrip("/")


@dataclass(frozen=True)
class UploadedFile:
    field_name: str
    filename: str
    content_type: str
    stream: BinaryIO


@dataclass(frozen=True)
class IncomingRequest:
    """Snapshot of the inbound request, built once at the HTTP boundary."""

    method: str
    raw_path: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    form_fields: Optional[List[Tuple[str, str]]] = None
    files: Tuple[UploadedFile, ...] = ()
    host_url: str = ""
    host_base_path: str = ""
    root_path: str = ""

    def header(self, name: str) -> Optional[str]:
        name_lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name_lower:
                return value
        return None

    @property
    def is_xhr(self) -> bool:
        return (self.header("X-Requested-With") or "").lower() == "xmlhttprequest"


@dataclass(frozen=True)
class UpstreamRequestSpec:
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[bytes] = None
    max_redirects: int = 0


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    # Ordered pairs; Set-Cookie may repeat
    headers: List[Tuple[str, str]]
    body: bytes = b""
    redirect_url: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        name_lower = name.lower()
        for key, value in self.headers:
            if key.lower() == name_lower:
                return value
        return None

    @property
    def cookies(self) -> List[str]:
        return [value for key, value in self.headers if key.lower() == "set-cookie"]

    @property
    def is_redirect(self) -> bool:
        return bool(self.redirect_url)


@dataclass
class ExtractedAssets:
    """Everything pulled out of one upstream HTML page."""

    main_html: str = ""
    scripts: List[str] = field(default_factory=list)
    inline_scripts: List[str] = field(default_factory=list)
    stylesheets: List[str] = field(default_factory=list)
    inline_styles: List[str] = field(default_factory=list)
    csrf_token: Optional[str] = None
    login_form_html: str = ""
