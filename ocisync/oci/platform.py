"""Platform matching for image index entries

ref: https://github.com/opencontainers/image-spec/blob/main/image-index.md
"""
from pydantic import BaseModel, ConfigDict, Field

# Hosts that can run images built for another OS
OS_COMPAT = {
    "darwin": ("linux",),
}
OS_ALIASES = {"macos": "darwin"}
ARCH_ALIASES = {
    "x86_64": ("amd64", ""),
    "x86-64": ("amd64", ""),
    "aarch64": ("arm64", ""),
    "armhf": ("arm", "v7"),
    "armel": ("arm", "v6"),
}
DEFAULT_VARIANT = {"amd64": "v1", "arm64": "v8", "arm": "v7"}
# Ordered variants, a host runs any variant up to its own
VARIANT_ORDER = {
    "amd64": ("v1", "v2", "v3", "v4"),
    "arm": ("v5", "v6", "v7", "v8"),
}
# Host architecture -> (other architecture, highest variant it can run)
ARCH_COMPAT = {
    "arm64": ("arm", "v8"),
}


class Platform(BaseModel):
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/image-index.md
    """

    model_config = ConfigDict(populate_by_name=True)

    architecture: str
    os: str
    osVersion: str | None = Field(default=None, alias="os.version")
    osFeatures: list[str] | None = Field(default=None, alias="os.features")
    variant: str | None = None

    def __str__(self):
        return "/".join(p for p in (self.os, self.architecture, self.variant) if p)

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Parse an `os/arch[/variant]` string, e.g. linux/arm64/v8"""
        parts = value.strip().split("/")
        if len(parts) < 2 or len(parts) > 3 or not all(parts):
            raise ValueError(f"invalid platform: {value!r}")
        os_name, architecture, *variant = parts
        return cls(
            os=os_name,
            architecture=architecture,
            variant=variant[0] if variant else None,
        )

    def normalized(self) -> tuple[str, str, str]:
        """Return the (os, architecture, variant) triple with aliases resolved"""
        os_name = OS_ALIASES.get(self.os.lower(), self.os.lower())
        arch = self.architecture.lower()
        variant = (self.variant or "").lower()
        if arch in ARCH_ALIASES:
            arch, alias_variant = ARCH_ALIASES[arch]
            variant = variant or alias_variant
        return os_name, arch, variant or DEFAULT_VARIANT.get(arch, "")

    def match(self, other: "Platform") -> bool:
        """Exact match on os, architecture and variant"""
        if self.normalized() != other.normalized():
            return False
        return _os_version_match(self, other)

    def compatible(self, target: "Platform") -> bool:
        """Check if a host with this platform can run the target platform"""
        if self.match(target):
            return True
        host_os, host_arch, host_variant = self.normalized()
        target_os, target_arch, target_variant = target.normalized()
        if target_os != host_os and target_os not in OS_COMPAT.get(host_os, ()):
            return False
        if target_os == host_os and not _os_version_match(self, target):
            return False
        if target_arch == host_arch:
            return _variant_runs(host_arch, host_variant, target_variant)
        if host_arch in ARCH_COMPAT:
            alt_arch, alt_variant = ARCH_COMPAT[host_arch]
            if target_arch == alt_arch:
                return _variant_runs(alt_arch, alt_variant, target_variant)
        return False


def _variant_runs(arch: str, host: str, target: str) -> bool:
    order = VARIANT_ORDER.get(arch)
    if order is None or host not in order or target not in order:
        return host == target
    return order.index(target) <= order.index(host)


def _os_version_match(a: Platform, b: Platform) -> bool:
    # Windows images only run on the same major.minor.build
    if a.os != "windows" or not a.osVersion or not b.osVersion:
        return True
    return a.osVersion.split(".")[:3] == b.osVersion.split(".")[:3]
