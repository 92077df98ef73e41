import re
from dataclasses import dataclass, replace

from ocisync.errors import InvalidDigestError, InvalidReferenceError
from ocisync.oci.digest import Digest

DOCKER_REGISTRY = "docker.io"
DOCKER_LIBRARY = "library"

COMPONENT_PATTERN = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
REPOSITORY_RE = re.compile(rf"{COMPONENT_PATTERN}(?:/{COMPONENT_PATTERN})*")
TAG_RE = re.compile(r"[\w][\w.-]{0,127}")


@dataclass(slots=True, frozen=True)
class Reference:
    """Image reference: `[registry/]repository[:tag][@digest]`

    Follows the docker conventions, a reference without a registry host
    points at Docker Hub and single component Hub repositories live
    under `library/`.
    """

    registry: str
    repository: str
    tag: str = ""
    digest: str = ""

    def __str__(self):
        return self.common_name

    @property
    def common_name(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name

    @property
    def reference(self) -> str:
        """The manifest reference used in registry API paths"""
        return self.digest or self.tag

    def with_tag(self, tag: str) -> "Reference":
        return replace(self, tag=tag, digest="")

    @classmethod
    def from_string(cls, value: str) -> "Reference":
        """Parse a reference string"""
        remainder, _, digest = value.strip().partition("@")
        if digest:
            try:
                Digest.parse(digest)
            except InvalidDigestError as e:
                raise InvalidReferenceError(f"invalid reference {value!r}: {e}") from e

        tag = ""
        name = remainder
        last = remainder.rsplit("/", 1)[-1]
        if ":" in last:
            name, tag = remainder.rsplit(":", 1)
            if not TAG_RE.fullmatch(tag):
                raise InvalidReferenceError(f"invalid tag in reference {value!r}")

        first, sep, rest = name.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        else:
            registry, repository = DOCKER_REGISTRY, name
        if registry == DOCKER_REGISTRY and "/" not in repository:
            repository = f"{DOCKER_LIBRARY}/{repository}"

        if not REPOSITORY_RE.fullmatch(repository):
            raise InvalidReferenceError(f"invalid repository in reference {value!r}")
        if not tag and not digest:
            tag = "latest"
        return cls(registry=registry, repository=repository, tag=tag, digest=digest)
