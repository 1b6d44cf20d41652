"""Data structures for registry manifests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_MANIFEST_LIST = (
    "application/vnd.docker.distribution.manifest.list.v2+json"
)
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"


class ManifestError(ValueError):
    """Raised when a manifest document is missing required fields."""


@dataclass
class Descriptor:
    """A content-addressed blob reference (layer or config)."""

    digest: str
    size: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Descriptor:
        if not isinstance(data, dict):
            raise ManifestError(f"Invalid descriptor: {data!r}")
        try:
            return cls(
                digest=str(data["digest"]),
                size=int(data.get("size", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ManifestError(f"Invalid descriptor: {data!r}") from exc


@dataclass
class Manifest:
    """A single-platform image manifest (Docker schema 2 or OCI)."""

    config: Descriptor
    layers: list[Descriptor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Build a manifest from its JSON document.

        Raises:
            ManifestError: If the document has no ``config`` descriptor or
                its ``layers`` are not a list of descriptors.
        """
        if not isinstance(data.get("config"), dict):
            raise ManifestError("Manifest has no config descriptor")
        layers = data.get("layers") or []
        if not isinstance(layers, list):
            raise ManifestError("Manifest layers are not a list")
        return cls(
            config=Descriptor.from_dict(data["config"]),
            layers=[Descriptor.from_dict(layer) for layer in layers],
        )

    @property
    def total_size(self) -> int:
        """Compressed size: all layers plus the config blob."""
        return sum(layer.size for layer in self.layers) + self.config.size

    @property
    def last_layer(self) -> Descriptor | None:
        return self.layers[-1] if self.layers else None
