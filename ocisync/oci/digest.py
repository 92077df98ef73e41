"""Content digests

ref: https://github.com/opencontainers/image-spec/blob/main/descriptor.md#digests
"""
import hashlib
import re
from enum import Enum

from ocisync.errors import InvalidDigestError, UnsupportedAlgorithmError

HEX_RE = re.compile(r"[a-f0-9]+")


class Algorithm(str, Enum):
    SHA256 = "sha256"
    SHA512 = "sha512"

    def __str__(self):
        return self.value

    @classmethod
    def from_name(cls, name: "str | Algorithm") -> "Algorithm":
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedAlgorithmError(
                f"unsupported digest algorithm: {name!r}"
            ) from None

    @property
    def size(self) -> int:
        """Length of the hex encoded hash"""
        return hashlib.new(self.value).digest_size * 2

    def hash(self, data: bytes) -> str:
        return hashlib.new(self.value, data).hexdigest()


CANONICAL = Algorithm.SHA256


class Digest(str):
    """A validated `<algorithm>:<hex>` digest string."""

    __slots__ = ()

    @classmethod
    def parse(cls, value: str) -> "Digest":
        algorithm, sep, encoded = (value or "").partition(":")
        if not sep:
            raise InvalidDigestError(f"invalid digest format: {value!r}")
        try:
            algo = Algorithm.from_name(algorithm)
        except UnsupportedAlgorithmError:
            raise InvalidDigestError(
                f"unsupported digest algorithm in {value!r}"
            ) from None
        if len(encoded) != algo.size or not HEX_RE.fullmatch(encoded):
            raise InvalidDigestError(f"invalid {algo} hash in {value!r}")
        return cls(value)

    @classmethod
    def from_bytes(cls, data: bytes, algorithm: Algorithm = CANONICAL) -> "Digest":
        algo = Algorithm.from_name(algorithm)
        return cls(f"{algo}:{algo.hash(data)}")

    @property
    def algorithm(self) -> Algorithm:
        return Algorithm(self.partition(":")[0])

    @property
    def encoded(self) -> str:
        return self.partition(":")[2]

    def verify(self, data: bytes) -> bool:
        """Check if data hashes to this digest"""
        return self.algorithm.hash(data) == self.encoded


def is_valid(value: str) -> bool:
    try:
        Digest.parse(value)
    except InvalidDigestError:
        return False
    return True
