from __future__ import annotations

import logging
import re
import threading
from typing import Protocol
from urllib.parse import urlparse, urlunparse

import httpx

from ocisync.errors import CanceledError, OCISyncError
from ocisync.oci.index import ACCEPT
from ocisync.oci.reference import DOCKER_REGISTRY, Reference

logger = logging.getLogger(__name__)

DOCKER_HUB = "registry-1.docker.io"
# Quoted values may contain commas, e.g. scope="repository:repo:pull,push"
AUTH_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


class AuthenticationError(OCISyncError):
    """Raised when authentication fails."""


class RegistryClient(Protocol):
    """Registry operations used by the sync and cleanup logic"""

    def list_tags(
        self, ref: Reference, cancel: threading.Event | None = None
    ) -> list[str]:
        ...

    def delete_tag(
        self, ref: Reference, cancel: threading.Event | None = None
    ) -> None:
        ...


def check_canceled(cancel: threading.Event | None):
    if cancel is not None and cancel.is_set():
        raise CanceledError("operation canceled")


def _clean_url(registry_url: str, insecure: bool = False) -> str:
    if "://" not in registry_url:
        scheme = "http" if insecure else "https"
        registry_url = f"{scheme}://{registry_url}"
    parts = urlparse(registry_url)
    if parts.netloc == DOCKER_REGISTRY:
        parts = parts._replace(netloc=DOCKER_HUB)
    return urlunparse(parts).rstrip("/")


def _parse_www_auth(www_authenticate: str) -> dict[str, str]:
    """Parse the WWW-Authenticate header"""
    return dict(AUTH_PARAM_RE.findall(www_authenticate.removeprefix("Bearer ")))


class BearerAuth(httpx.Auth):
    """Attaches HTTP Bearer Authentication to the given Request object."""

    def __init__(self, token: str):
        self.token = token

    def auth_flow(self, request):
        request.headers["Authorization"] = f"Bearer {self.token}"
        yield request


class Client:
    """Client for the OCI registry API of a single registry host."""

    def __init__(
        self,
        registry_url: str,
        username: str | None = None,
        password: str | None = None,
        insecure: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        self.registry_url = _clean_url(registry_url, insecure=insecure)
        self.username = username
        self.password = password
        self._transport = transport
        self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def session(self) -> httpx.Client:
        if self._session is None:
            self._session = httpx.Client(
                follow_redirects=True,
                max_redirects=2,
                transport=self._transport,
            )
        return self._session

    def close(self):
        if self._session is not None:
            self._session.close()
            self._session = None

    def request(self, method: str, uri: str, **kwargs) -> httpx.Response:
        """Send a request, answering a single bearer token challenge"""
        url = uri if "://" in uri else f"{self.registry_url}{uri}"
        response = self.session.request(method, url, **kwargs)
        www_authenticate = response.headers.get("WWW-Authenticate", "")
        if response.status_code == 401 and www_authenticate.startswith("Bearer "):
            challenge = _parse_www_auth(www_authenticate)
            logger.debug(challenge)
            self.authenticate(
                token_url=challenge["realm"],
                service=challenge.get("service"),
                scope=challenge.get("scope"),
            )
            response = self.session.request(method, url, **kwargs)
        return response

    def authenticate(self, token_url, service, scope):
        """Use the token api with basic authentication to get a token

        ref: https://distribution.github.io/distribution/spec/auth/token/
        """
        params = {"service": service, "scope": scope}
        auth = None
        if self.password:
            auth = (self.username or "", self.password)
            params["client_id"] = self.username
        response = self.session.get(
            token_url,
            params={k: v for k, v in params.items() if v is not None},
            auth=auth,
        )
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{self.registry_url} requires authentication, "
                f"provide a username and/or password."
            )
        response.raise_for_status()
        body = response.json()
        self.session.auth = BearerAuth(body.get("token") or body["access_token"])

    def list_tags(
        self, name: str, cancel: threading.Event | None = None
    ) -> list[str]:
        """List all tags of repository `name`, following pagination links

        ref: https://github.com/opencontainers/distribution-spec/blob/main/spec.md#listing-tags
        """
        tags: list[str] = []
        uri = f"/v2/{name}/tags/list"
        while uri:
            check_canceled(cancel)
            result = self.request("GET", uri)
            result.raise_for_status()
            tags.extend(result.json().get("tags") or [])
            uri = result.links.get("next", {}).get("url")
        return tags

    def delete_tag(
        self, name: str, tag: str, cancel: threading.Event | None = None
    ):
        """Delete tag `tag` of repository `name`

        ref: https://github.com/opencontainers/distribution-spec/blob/main/spec.md#deleting-tags
        """
        check_canceled(cancel)
        response = self.request("DELETE", f"/v2/{name}/manifests/{tag}")
        response.raise_for_status()

    def pull_manifest(
        self, name: str, reference: str, media_type: str = ACCEPT
    ) -> httpx.Response:
        uri = f"/v2/{name}/manifests/{reference}"
        result = self.request("GET", uri, headers={"Accept": media_type})
        if result.status_code == 403:
            logger.debug(result.headers)
        result.raise_for_status()
        return result


class Registry:
    """RegistryClient routing references to a Client per registry host"""

    def __init__(
        self,
        hosts: dict[str, dict] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.hosts = hosts or {}
        self._transport = transport
        self._clients: dict[str, Client] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def client(self, registry: str) -> Client:
        if registry not in self._clients:
            self._clients[registry] = Client(
                registry_url=registry,
                transport=self._transport,
                **self.hosts.get(registry, {}),
            )
        return self._clients[registry]

    def close(self):
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def list_tags(
        self, ref: Reference, cancel: threading.Event | None = None
    ) -> list[str]:
        return self.client(ref.registry).list_tags(ref.repository, cancel=cancel)

    def delete_tag(self, ref: Reference, cancel: threading.Event | None = None):
        if not ref.tag:
            raise ValueError(f"reference has no tag: {ref}")
        self.client(ref.registry).delete_tag(ref.repository, ref.tag, cancel=cancel)

    def pull_manifest(self, ref: Reference) -> httpx.Response:
        return self.client(ref.registry).pull_manifest(ref.repository, ref.reference)
