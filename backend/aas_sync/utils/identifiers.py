"""
Identifier and element-path helpers.

Submodel identifiers are opaque strings assigned by the remote AAS server.
They travel in URLs as unpadded base64url tokens. Element paths are kept
internally as tuples of idShort segments and rendered with "/" separators.
"""

import base64
from urllib.parse import quote

PATH_SEPARATOR = "/"
SERVER_PATH_SEPARATOR = "."
KEY_SEPARATOR = "::"

ElementPath = tuple[str, ...]


def encode_id(resource_id: str | None) -> str | None:
    """
    Encode a submodel identifier as an unpadded base64url token.

    Empty or missing identifiers are returned unchanged so callers can pass
    through values that are already safe.

    Args:
        resource_id: Raw identifier (e.g. "https://example.com/ids/sm/1")

    Returns:
        Token usable as a single URL path segment
    """
    if not resource_id:
        return resource_id
    token = base64.b64encode(resource_id.encode("utf-8")).decode("ascii")
    return token.rstrip("=").replace("+", "-").replace("/", "_")


def decode_id(token: str | None) -> str | None:
    """Decode a token produced by encode_id back to the raw identifier."""
    if not token:
        return token
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def split_path(path: str | ElementPath | None) -> ElementPath:
    """
    Split a slash-delimited path into its segments.

    Tuples are returned as-is; None and "" become the empty path (the
    submodel root).
    """
    if path is None:
        return ()
    if isinstance(path, tuple):
        return path
    return tuple(segment for segment in str(path).split(PATH_SEPARATOR) if segment)


def join_path(path: ElementPath) -> str:
    """Render a path with "/" separators."""
    return PATH_SEPARATOR.join(path)


def normalize_server_path(raw_path: str | None) -> ElementPath:
    """
    Parse an idShortPath as reported by a server.

    BaSyx-style servers report "a.b.c" while others report "a/b/c". idShorts
    cannot contain either character, so both are treated as separators.
    """
    if not raw_path:
        return ()
    return split_path(str(raw_path).replace(SERVER_PATH_SEPARATOR, PATH_SEPARATOR))


def parent_of(path: ElementPath) -> ElementPath:
    """
    Drop the last segment of a path.

    The parent of a single-segment path is the empty path (submodel root),
    never None.
    """
    return tuple(path[:-1])


def child_path(parent: ElementPath, id_short: str) -> ElementPath:
    """Build the path of a direct child from its parent path and idShort."""
    return (*parent, id_short)


def compose_key(resource_id: str, path: ElementPath = ()) -> str:
    """
    Compose the local tree key for a node.

    The key is only used to re-identify nodes across reloads; it is never
    sent to a server.
    """
    return f"{resource_id}{KEY_SEPARATOR}{join_path(path)}"


def split_key(key: str) -> tuple[str, ElementPath]:
    """Inverse of compose_key."""
    resource_id, _, rendered = key.rpartition(KEY_SEPARATOR)
    if not resource_id and KEY_SEPARATOR not in key:
        return key, ()
    return resource_id, split_path(rendered)


def to_parent_path_param(path: ElementPath) -> str | None:
    """Render a path for the server-side parentPath query parameter."""
    if not path:
        return None
    return SERVER_PATH_SEPARATOR.join(path)


def encode_path_segments(path: ElementPath) -> str:
    """
    Percent-encode each path segment and rejoin them with "/".

    Segment boundaries stay visible to the server.
    """
    return PATH_SEPARATOR.join(quote(segment, safe="") for segment in path)
