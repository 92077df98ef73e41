from pydantic import BaseModel

from ocisync.oci.descriptor import Descriptor

OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"

INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)
MANIFEST_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST)
ACCEPT = ", ".join(INDEX_MEDIA_TYPES + MANIFEST_MEDIA_TYPES)


class Versioned(BaseModel):
    """Fields shared by indexes and manifests, enough to tell them apart"""

    schemaVersion: int = 2
    mediaType: str = ""


class Manifest(BaseModel):
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/manifest.md
    """

    config: Descriptor
    artifactType: str | None = None
    layers: list[Descriptor] = []
    subject: Descriptor | None = None
    annotations: dict[str, str] | None = None

    mediaType: str = OCI_MANIFEST
    schemaVersion: int = 2


class Index(BaseModel):
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/image-index.md
    """

    manifests: list[Descriptor] = []
    artifactType: str | None = None
    subject: Descriptor | None = None
    annotations: dict[str, str] | None = None
    schemaVersion: int = 2
    mediaType: str = OCI_INDEX
