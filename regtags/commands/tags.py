"""Tags command — list the tags of a repository, optionally with manifest details."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from tabulate import tabulate

from regtags.registry.client import RegistryClient, RegistryError

logger = logging.getLogger(__name__)

TABLE_HEADERS = ["tag", "compressed", "last layer", "created"]


@dataclass
class TagEntry:
    """One row of the verbose tags table."""

    tag: str
    size: str
    layer: str
    created: str


def human_size(size_bytes: int) -> str:
    """Convert bytes to a human-readable string in binary (IEC) units."""
    if abs(size_bytes) < 1024:
        return f"{size_bytes} B"
    value = size_bytes / 1024
    for unit in ("KiB", "MiB", "GiB", "TiB", "PiB"):
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} EiB"


def format_rfc3339(created: datetime | None) -> str:
    """Render *created* as an RFC 3339 timestamp, or ``""`` when unknown."""
    if created is None:
        return ""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    text = created.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def compare_entries(a: TagEntry, b: TagEntry) -> int:
    """Order newest first, undated entries last, then by tag name."""
    if a.created != b.created:
        if not a.created:
            return 1
        if not b.created:
            return -1
        return -1 if a.created > b.created else 1
    if a.tag == b.tag:
        return 0
    return -1 if a.tag < b.tag else 1


def sort_entries(entries: list[TagEntry]) -> list[TagEntry]:
    return sorted(entries, key=functools.cmp_to_key(compare_entries))


def collect_entries(
    client: RegistryClient,
    repository: str,
    tags: list[str],
) -> list[TagEntry]:
    """Fetch manifest details for each tag, one after the other.

    Tags whose manifest cannot be fetched are logged and left out. A failed
    creation date lookup yields an empty ``created`` field.
    """
    entries: list[TagEntry] = []
    for tag in tags:
        try:
            manifest = client.get_manifest_v2(repository, tag)
        except RegistryError as exc:
            logger.warning("could not fetch manifest for tag '%s': %s", tag, exc)
            continue

        try:
            created = client.tag_created_date(repository, tag, manifest=manifest)
        except RegistryError as exc:
            logger.debug("could not fetch creation date for tag '%s': %s", tag, exc)
            created = None

        last_layer = manifest.last_layer
        entries.append(
            TagEntry(
                tag=tag,
                size=human_size(manifest.total_size),
                layer=last_layer.digest if last_layer else "",
                created=format_rfc3339(created),
            )
        )
    return entries


def render_table(entries: list[TagEntry]) -> str:
    """Render *entries* as a whitespace-aligned table with a header row."""
    rows = [[e.tag, e.size, e.layer, e.created] for e in entries]
    return tabulate(
        rows,
        headers=TABLE_HEADERS,
        tablefmt="plain",
        disable_numparse=True,
    )


def run_tags(client: RegistryClient, repository: str, *, verbose: bool = False) -> str:
    """Return the text the ``tags`` command prints for *repository*.

    Raises:
        RegistryError: If the tag list cannot be fetched.
    """
    tags = sorted(client.list_tags(repository))
    logger.debug("Found %d tags for %s", len(tags), repository)

    if not verbose:
        return "\n".join(tags)

    entries = sort_entries(collect_entries(client, repository, tags))
    return render_table(entries)
