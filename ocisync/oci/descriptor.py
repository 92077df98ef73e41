from dataclasses import dataclass
from typing import Iterable

from pydantic import BaseModel, ConfigDict, PrivateAttr

from ocisync.errors import (
    DigestMismatchError,
    InvalidDigestError,
    MissingDataError,
    NotFoundError,
    SizeMismatchError,
)
from ocisync.oci.digest import CANONICAL, Algorithm, Digest, is_valid
from ocisync.oci.platform import Platform


class Descriptor(BaseModel):
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/descriptor.md
    """

    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    mediaType: str = ""
    size: int = 0
    digest: str = ""
    urls: list[str] | None = None
    annotations: dict[str, str] | None = None
    data: bytes | None = None
    platform: Platform | None = None
    artifactType: str | None = None

    _digest_algo: Algorithm | None = PrivateAttr(default=None)

    def equal(self, other: "Descriptor") -> bool:
        """Compare every field, annotations and urls ignore ordering"""
        if (
            self.mediaType != other.mediaType
            or self.size != other.size
            or self.digest != other.digest
            or self.artifactType != other.artifactType
            or self.data != other.data
        ):
            return False
        if not _same_items(self.urls, other.urls):
            return False
        if self.annotations is None or other.annotations is None:
            if self.annotations is not other.annotations:
                return False
        elif self.annotations != other.annotations:
            return False
        if self.platform is None or other.platform is None:
            return self.platform is other.platform
        return self.platform == other.platform

    def same(self, other: "Descriptor") -> bool:
        """Compare the content identity (digest and size) only

        The same bytes may be described with a different media type,
        e.g. a Docker schema2 manifest converted to OCI.
        """
        return self.digest == other.digest and self.size == other.size

    def get_data(self) -> bytes:
        """Return the inline data after verifying its size and digest"""
        if not self.data:
            raise MissingDataError("descriptor has no inline data")
        if len(self.data) != self.size:
            raise SizeMismatchError(
                f"inline data size {len(self.data)} does not match {self.size}"
            )
        try:
            digest = Digest.parse(self.digest)
        except InvalidDigestError as e:
            raise DigestMismatchError(f"unable to verify inline data: {e}") from e
        if not digest.verify(self.data):
            raise DigestMismatchError(f"inline data does not match {digest}")
        return self.data

    def digest_algo(self) -> Algorithm:
        """Algorithm of the digest, falling back to the preferred algorithm"""
        if is_valid(self.digest):
            return Digest(self.digest).algorithm
        if self._digest_algo is not None:
            return self._digest_algo
        return CANONICAL

    def digest_algo_prefer(self, algorithm: "str | Algorithm") -> None:
        """Set the algorithm used when this descriptor has no valid digest"""
        self._digest_algo = Algorithm.from_name(algorithm)

    def matches(self, opt: "MatchOpt", check_platform: bool = True) -> bool:
        if opt.artifact_type and self.artifactType != opt.artifact_type:
            return False
        if opt.annotations:
            if self.annotations is None:
                return False
            for key, value in opt.annotations.items():
                if self.annotations.get(key) != value:
                    return False
        if check_platform and opt.platform is not None:
            if self.platform is None or not opt.platform.compatible(self.platform):
                return False
        return True


def _same_items(a: list[str] | None, b: list[str] | None) -> bool:
    if a is None or b is None:
        return a is b
    return len(a) == len(b) and set(a) == set(b)


@dataclass(slots=True)
class MatchOpt:
    """Options for selecting a descriptor out of a list"""

    platform: Platform | None = None
    annotations: dict[str, str] | None = None
    artifact_type: str = ""
    sort_annotation: str = ""
    sort_desc: bool = False

    def merge(self, changes: "MatchOpt") -> "MatchOpt":
        """Return a copy with every populated field of changes applied"""
        annotations = None
        if self.annotations is not None or changes.annotations is not None:
            annotations = dict(self.annotations or {})
            annotations.update(changes.annotations or {})
        return MatchOpt(
            platform=changes.platform or self.platform,
            annotations=annotations,
            artifact_type=changes.artifact_type or self.artifact_type,
            sort_annotation=changes.sort_annotation or self.sort_annotation,
            sort_desc=changes.sort_desc or self.sort_desc,
        )


def descriptor_list_search(
    descriptors: Iterable[Descriptor], opt: MatchOpt
) -> Descriptor:
    """Select the best matching descriptor, e.g. from the entries of an index

    Platform filtering only applies when any descriptor in the list has a
    platform. Exact platform matches win over compatible ones. With a sort
    annotation the candidates are ordered by its value, descriptors without
    the annotation always come last. Remaining ties return the first
    descriptor in list order.
    """
    descriptors = list(descriptors)
    check_platform = opt.platform is not None and any(
        d.platform is not None for d in descriptors
    )
    candidates = [d for d in descriptors if d.matches(opt, check_platform)]
    if not candidates:
        raise NotFoundError(f"no descriptor matches {opt}")

    if check_platform:
        exact = [d for d in candidates if opt.platform.match(d.platform)]
        candidates = exact or candidates

    if opt.sort_annotation and len(candidates) > 1:
        key = opt.sort_annotation
        present = [d for d in candidates if d.annotations and key in d.annotations]
        missing = [d for d in candidates if not (d.annotations and key in d.annotations)]
        present.sort(key=lambda d: d.annotations[key], reverse=opt.sort_desc)
        candidates = present + missing

    return candidates[0]
