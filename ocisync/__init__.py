"""Content-addressed descriptor matching and tag cleanup for OCI registries"""
from ocisync import oci, sync

__version__ = "0.1.0"

__all__ = ["oci", "sync", "__version__"]
