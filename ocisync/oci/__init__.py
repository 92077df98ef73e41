"""OCI content addressing for Python

This module provides digests, descriptors and descriptor selection,
plus a client for the subset of the OCI registry API used by ocisync.
"""
import logging

from ocisync.errors import DigestMismatchError

from .client import Client, Registry, RegistryClient
from .descriptor import Descriptor, MatchOpt, descriptor_list_search
from .digest import CANONICAL, Algorithm, Digest
from .index import INDEX_MEDIA_TYPES, Index, Manifest, Versioned
from .platform import Platform
from .reference import Reference

logger = logging.getLogger(__name__)


def resolve_descriptor(registry: Registry, ref: Reference, opt: MatchOpt) -> Descriptor:
    """Resolve a reference to a single manifest descriptor

    An index or manifest list is searched using `opt`, any other
    manifest is returned as a descriptor carrying its own content.
    """
    response = registry.pull_manifest(ref)
    data = response.content
    media_type = response.headers.get("Content-Type", "").split(";")[0].strip()
    if not media_type:
        media_type = Versioned.model_validate_json(data).mediaType
    if ref.digest and not Digest.parse(ref.digest).verify(data):
        raise DigestMismatchError(f"manifest content does not match {ref.digest}")
    digest = Digest.parse(ref.digest) if ref.digest else Digest.from_bytes(data)
    logger.debug("Pulled %s (%s, %s)", ref, media_type, digest)

    if media_type in INDEX_MEDIA_TYPES:
        index = Index.model_validate_json(data)
        logger.info("Searching %d entries of %s", len(index.manifests), ref)
        return descriptor_list_search(index.manifests, opt)

    manifest = Manifest.model_validate_json(data)
    return Descriptor(
        mediaType=media_type or manifest.mediaType,
        digest=digest,
        size=len(data),
        data=data,
        artifactType=manifest.artifactType or manifest.config.mediaType,
    )


__all__ = [
    "CANONICAL",
    "Algorithm",
    "Client",
    "Descriptor",
    "Digest",
    "Index",
    "Manifest",
    "MatchOpt",
    "Platform",
    "Reference",
    "Registry",
    "RegistryClient",
    "descriptor_list_search",
    "resolve_descriptor",
]
