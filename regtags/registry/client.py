"""HTTP client for the Docker Registry V2 API."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

import requests

from regtags.registry.auth import resolve_credentials
from regtags.registry.models import (
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST_LIST,
    MEDIA_TYPE_OCI_INDEX,
    MEDIA_TYPE_OCI_MANIFEST,
    Manifest,
    ManifestError,
)
from regtags.registry.parser import DOCKER_HUB_DOMAIN

logger = logging.getLogger(__name__)

# Docker Hub authentication endpoint.
_DOCKER_AUTH_URL = "https://auth.docker.io/token"
_DOCKER_AUTH_SERVICE = "registry.docker.io"

# Domains whose API is served from another host.
_API_HOSTS: dict[str, str] = {
    DOCKER_HUB_DOMAIN: "registry-1.docker.io",
    "index.docker.io": "registry-1.docker.io",
}

_MANIFEST_ACCEPT = ", ".join(
    [
        MEDIA_TYPE_DOCKER_MANIFEST,
        MEDIA_TYPE_OCI_MANIFEST,
        MEDIA_TYPE_DOCKER_MANIFEST_LIST,
        MEDIA_TYPE_OCI_INDEX,
    ]
)

# Platform resolved when a tag points at a manifest list / OCI index.
_DEFAULT_PLATFORM = ("linux", "amd64")

# Fractional seconds beyond microseconds are not accepted by fromisoformat.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class RegistryError(Exception):
    """Raised when a registry API call fails."""


class RegistryClient:
    """Client for interacting with a Docker Registry V2 API.

    Handles bearer-token and basic authentication transparently.

    Args:
        domain: Registry domain (e.g. ``docker.io`` or ``localhost:5000``).
        username: Optional username for authentication.
        password: Optional password for authentication.
        timeout: HTTP request timeout in seconds.
        insecure: Skip TLS certificate verification.
        plain_http: Talk plain HTTP instead of HTTPS.
    """

    def __init__(
        self,
        domain: str,
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: int = 30,
        insecure: bool = False,
        plain_http: bool = False,
    ) -> None:
        self.domain = domain
        self.username = username
        self.password = password
        self.timeout = timeout
        self.host = _API_HOSTS.get(domain, domain)
        self._session = requests.Session()
        self._session.verify = not insecure
        self._tokens: dict[str, str] = {}
        self._basic = False
        scheme = "http" if plain_http else "https"
        self._base_url = f"{scheme}://{self.host}/v2"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Check that the registry answers the V2 API.

        Raises:
            RegistryError: If the registry is unreachable or not a V2 registry.
        """
        url = self._base_url + "/"
        resp = self._request(url, {})
        # 401 still proves a V2 registry is listening.
        if resp.status_code not in (200, 401):
            raise RegistryError(
                f"Registry {self.host} returned {resp.status_code} for {url}"
            )

    def list_tags(self, repository: str) -> list[str]:
        """Return all tags for *repository*, following pagination.

        Returns:
            Sorted list of tag names.

        Raises:
            RegistryError: If the API call fails.
        """
        tags: list[str] = []
        url: str | None = f"{self._base_url}/{repository}/tags/list"
        while url:
            resp = self._get(url, repository)
            page = _json(resp).get("tags") or []
            if not isinstance(page, list):
                raise RegistryError(f"Unexpected tag list from {resp.url}")
            tags.extend(str(tag) for tag in page)
            url = self._next_page(resp)
        return sorted(tags)

    def get_manifest_v2(self, repository: str, reference: str) -> Manifest:
        """Fetch the single-platform manifest for a tag or digest.

        When *reference* resolves to a manifest list or OCI index, the
        ``linux/amd64`` entry is fetched instead (or the first entry when
        that platform is absent).

        Raises:
            RegistryError: If the manifest cannot be fetched or parsed.
        """
        data = self._get_manifest(repository, reference)

        media_type = data.get("mediaType", "")
        if media_type in (MEDIA_TYPE_DOCKER_MANIFEST_LIST, MEDIA_TYPE_OCI_INDEX) or (
            "manifests" in data and "layers" not in data
        ):
            entries = data.get("manifests") or []
            if not isinstance(entries, list):
                raise RegistryError(
                    f"Manifest index for {repository}:{reference} is malformed"
                )
            digest = _select_platform(entries)
            if digest is None:
                raise RegistryError(
                    f"Manifest index for {repository}:{reference} has no usable entries"
                )
            logger.debug("Resolved %s:%s to %s", repository, reference, digest)
            data = self._get_manifest(repository, digest)

        if data.get("schemaVersion") == 1:
            raise RegistryError(
                f"Schema 1 manifest for {repository}:{reference} is not supported"
            )

        try:
            return Manifest.from_dict(data)
        except ManifestError as exc:
            raise RegistryError(
                f"Invalid manifest for {repository}:{reference}: {exc}"
            ) from exc

    def get_blob(self, repository: str, digest: str) -> dict[str, Any]:
        """Fetch a JSON blob (typically an image config) by digest."""
        return _json(self._get(f"{self._base_url}/{repository}/blobs/{digest}", repository))

    def tag_created_date(
        self,
        repository: str,
        tag: str,
        manifest: Manifest | None = None,
    ) -> datetime | None:
        """Return the creation date recorded in the tag's image config.

        Args:
            repository: Repository path.
            tag: The image tag.
            manifest: Already-fetched manifest for *tag*, to avoid a second call.

        Returns:
            A timezone-aware datetime, or None if the config has no ``created``.

        Raises:
            RegistryError: If the manifest or config cannot be fetched.
        """
        if manifest is None:
            manifest = self.get_manifest_v2(repository, tag)
        config = self.get_blob(repository, manifest.config.digest)
        created = config.get("created")
        if not created:
            return None
        if not isinstance(created, str):
            raise RegistryError(
                f"Invalid created timestamp {created!r} for {repository}:{tag}"
            )
        try:
            return _parse_timestamp(created)
        except ValueError as exc:
            raise RegistryError(
                f"Invalid created timestamp {created!r} for {repository}:{tag}"
            ) from exc

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get_manifest(self, repository: str, reference: str) -> dict[str, Any]:
        url = f"{self._base_url}/{repository}/manifests/{reference}"
        return _json(self._get(url, repository, accept=_MANIFEST_ACCEPT))

    def _get(
        self,
        url: str,
        repository: str,
        *,
        accept: str | None = None,
    ) -> requests.Response:
        """Make an authenticated GET request to the registry."""
        headers: dict[str, str] = {}
        if accept:
            headers["Accept"] = accept

        # Try with what we have, then authenticate on 401.
        scope = f"repository:{repository}:pull"
        resp = self._request(url, headers, scope)
        if resp.status_code == 401:
            scope = self._authenticate(resp, scope)
            resp = self._request(url, headers, scope)

        if resp.status_code != 200:
            raise RegistryError(
                f"Registry returned {resp.status_code} for {url}: {resp.text[:200]}"
            )
        return resp

    def _request(
        self,
        url: str,
        headers: dict[str, str],
        scope: str | None = None,
    ) -> requests.Response:
        """Execute a single GET request, attaching credentials if available."""
        req_headers = {**headers}
        auth = None
        token = self._tokens.get(scope) if scope else None
        if token:
            req_headers["Authorization"] = f"Bearer {token}"
        elif self._basic and self.username and self.password:
            auth = (self.username, self.password)

        logger.debug("GET %s", url)
        try:
            return self._session.get(
                url, headers=req_headers, auth=auth, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise RegistryError(f"Request to {url} failed: {exc}") from exc

    def _authenticate(self, response: requests.Response, scope: str) -> str:
        """Handle a ``WWW-Authenticate`` challenge; return the scope to use.

        Bearer tokens are cached under both the challenged scope and *scope*.
        """
        requested = scope
        www_auth = response.headers.get("WWW-Authenticate", "")
        if www_auth.lower().startswith("basic"):
            logger.debug("Using basic auth for %s", self.host)
            self._basic = True
            return scope

        params = _parse_www_authenticate(www_auth)
        if "realm" in params:
            realm = params["realm"]
            service = params.get("service")
        elif self.host == _API_HOSTS[DOCKER_HUB_DOMAIN]:
            realm = _DOCKER_AUTH_URL
            service = params.get("service", _DOCKER_AUTH_SERVICE)
        else:
            raise RegistryError(
                f"Registry {self.host} sent an auth challenge without a realm: {www_auth!r}"
            )
        scope = params.get("scope", scope)

        logger.debug("Authenticating: realm=%s service=%s scope=%s", realm, service, scope)

        auth = None
        if self.username and self.password:
            auth = (self.username, self.password)

        try:
            token_resp = self._session.get(
                realm,
                params={"service": service, "scope": scope},
                auth=auth,
                timeout=self.timeout,
            )
            token_resp.raise_for_status()
            body = token_resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise RegistryError(f"Authentication against {realm} failed: {exc}") from exc

        token = body.get("token") or body.get("access_token")
        if not token:
            raise RegistryError(f"Token endpoint {realm} returned no token")
        self._tokens[scope] = token
        self._tokens[requested] = token
        return scope

    def _next_page(self, resp: requests.Response) -> str | None:
        """Return the absolute URL of the next tag page, if any."""
        link = resp.links.get("next", {}).get("url")
        if not link:
            return None
        if link.startswith("/"):
            return self._base_url.rsplit("/v2", 1)[0] + link
        return link


def create_registry_client(
    domain: str,
    *,
    cli_auths: list[str] | None = None,
    username: str | None = None,
    password: str | None = None,
    timeout: int = 30,
    insecure: bool = False,
    plain_http: bool = False,
    skip_ping: bool = False,
) -> RegistryClient:
    """Build a :class:`RegistryClient` for *domain* and check it is reachable.

    Explicit *username*/*password* win over resolved credentials.

    Raises:
        RegistryError: If the registry cannot be reached.
    """
    if not (username and password):
        username, password = resolve_credentials(domain, cli_auths)

    client = RegistryClient(
        domain,
        username=username,
        password=password,
        timeout=timeout,
        insecure=insecure,
        plain_http=plain_http,
    )
    if not skip_ping:
        client.ping()
    return client


def _json(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise RegistryError(f"Invalid JSON from {resp.url}") from exc
    if not isinstance(data, dict):
        raise RegistryError(f"Unexpected JSON document from {resp.url}")
    return data


def _select_platform(entries: list[Any]) -> str | None:
    """Pick the digest of the default platform from a manifest list.

    Entries that are not objects with a string digest are ignored.
    """
    usable = [
        entry
        for entry in entries
        if isinstance(entry, dict) and isinstance(entry.get("digest"), str)
    ]
    for entry in usable:
        platform = entry.get("platform")
        if not isinstance(platform, dict):
            continue
        if (platform.get("os"), platform.get("architecture")) == _DEFAULT_PLATFORM:
            return entry["digest"]
    if usable:
        return usable[0]["digest"]
    return None


def _parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as written in image configs."""
    value = _FRACTION_RE.sub(r"\1", value.strip().replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_www_authenticate(header: str) -> dict[str, str]:
    """Parse a ``Bearer realm=...,service=...,scope=...`` header into a dict."""
    # Strip the "Bearer " prefix.
    if header.lower().startswith("bearer "):
        header = header[7:]

    params: dict[str, str] = {}
    for match in re.finditer(r'(\w+)="([^"]*)"|(\w+)=([^,\s]*)', header):
        key = match.group(1) or match.group(3)
        value = match.group(2) if match.group(1) else match.group(4)
        params[key] = value
    return params
