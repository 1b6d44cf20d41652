"""Parse image references into registry components."""

from __future__ import annotations

import re
from dataclasses import dataclass

DOCKER_HUB_DOMAIN = "docker.io"

# Lowercase alphanumerics separated by '.', '_', '__' or any number of dashes.
_PATH_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_DOMAIN_RE = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*"
    r"(?::[0-9]+)?$"
)
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_RE = re.compile(
    r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$"
)


@dataclass
class ImageRef:
    """Parsed reference to an image repository.

    Attributes:
        domain: Registry domain (e.g. ``docker.io`` or ``localhost:5000``).
        path: Repository path inside the registry (e.g. ``library/nginx``).
        tag: Optional tag.
        digest: Optional content digest (``algorithm:hex``).
    """

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @property
    def name(self) -> str:
        """Return the fully qualified repository name."""
        return f"{self.domain}/{self.path}"

    def __str__(self) -> str:
        if self.digest:
            return f"{self.name}@{self.digest}"
        if self.tag:
            return f"{self.name}:{self.tag}"
        return self.name


def parse_image_ref(ref: str) -> ImageRef:
    """Parse ``NAME[:TAG|@DIGEST]`` into an :class:`ImageRef`.

    Supported forms:

    * ``nginx`` (Docker Hub official image, becomes ``library/nginx``)
    * ``nginxinc/nginx-unprivileged:stable``
    * ``myregistry.example.com/org/image:v1.0``
    * ``localhost:5000/app@sha256:...``

    Args:
        ref: The reference string.

    Returns:
        An :class:`ImageRef` with the parsed components.

    Raises:
        ValueError: If the reference is malformed.
    """
    if not ref or ref != ref.strip():
        raise ValueError(f"Invalid image reference: {ref!r}")

    remainder, digest = _split_digest(ref)
    remainder, tag = _split_tag(remainder)

    domain, path = _split_domain(remainder)

    for component in path.split("/"):
        if not _PATH_COMPONENT_RE.match(component):
            raise ValueError(
                f"Invalid repository name {path!r} in reference {ref!r}"
            )
    if len(f"{domain}/{path}") > 255:
        raise ValueError(f"Repository name too long in reference {ref!r}")

    return ImageRef(domain=domain, path=path, tag=tag, digest=digest)


def _split_digest(ref: str) -> tuple[str, str | None]:
    """Split ``name@digest`` into a ``(name, digest)`` tuple."""
    if "@" not in ref:
        return ref, None
    name, digest = ref.split("@", 1)
    if not _DIGEST_RE.match(digest):
        raise ValueError(f"Invalid digest {digest!r} in reference {ref!r}")
    return name, digest


def _split_tag(ref: str) -> tuple[str, str | None]:
    """Split ``name:tag`` into a ``(name, tag)`` tuple.

    Only a colon after the last slash separates a tag, so registry ports
    (``localhost:5000/app``) stay in the name.
    """
    slash = ref.rfind("/")
    colon = ref.rfind(":")
    if colon <= slash:
        return ref, None
    name, tag = ref[:colon], ref[colon + 1 :]
    if not _TAG_RE.match(tag):
        raise ValueError(f"Invalid tag {tag!r} in reference {ref!r}")
    return name, tag


def _split_domain(name: str) -> tuple[str, str]:
    """Split a repository name into ``(domain, path)``."""
    parts = name.split("/", 1)

    # Heuristic: the first segment is a domain if it looks like a hostname.
    if len(parts) == 2 and (
        "." in parts[0] or ":" in parts[0] or parts[0] == "localhost"
    ):
        domain, path = parts
        if not _DOMAIN_RE.match(domain):
            raise ValueError(f"Invalid registry domain {domain!r}")
        if domain in ("index.docker.io", "registry-1.docker.io"):
            domain = DOCKER_HUB_DOMAIN
    else:
        domain, path = DOCKER_HUB_DOMAIN, name

    # Official images live under "library/" on Docker Hub.
    if domain == DOCKER_HUB_DOMAIN and "/" not in path:
        path = "library/" + path
    return domain, path
