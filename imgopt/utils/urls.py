import posixpath
import re
from pathlib import Path
from typing import Optional, Union

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


def is_url(path: str) -> bool:
    return bool(_ABSOLUTE_URL.match(path))


def public_path(path: Union[str, Path], public_root: str = "", cdn_base: str = "") -> str:
    """
    Map a filesystem path to the path (or CDN URL) the browser should use.

    Pure string work, no filesystem access. Full URLs and relative paths
    are returned untouched.
    """
    path = str(path)
    root = public_root.rstrip("/")
    cdn  = cdn_base.rstrip("/")
    if not path or is_url(path):
        return path

    if root and path.startswith(root + "/"):
        web = "/" + path[len(root):].lstrip("/")
        return cdn + web if cdn else web
    if root and path == root:
        return cdn + "/" if cdn else "/"
    # Without a public root, absolute paths are already web paths
    if not root and cdn and path.startswith("/"):
        return cdn + path
    return path


def to_local_path(web_path: str, public_root: Union[str, Path]) -> Optional[Path]:
    """Resolve ``/img/a.jpg`` under *public_root*; ``None`` if it escapes the root."""
    if not web_path or is_url(web_path) or not str(public_root):
        return None
    rel = posixpath.normpath("/" + web_path.split("?", 1)[0].lstrip("/")).lstrip("/")
    if not rel or rel == "." or rel.startswith(".."):
        return None

    root      = Path(public_root).resolve()
    candidate = (root / rel).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate
