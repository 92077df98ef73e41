from pathlib import Path

import httpx
import pytest

from ocisync.oci.client import check_canceled

TEST_DATA = Path(__file__).parent / "testdata"


@pytest.fixture
def testdata() -> Path:
    """Return the testdata dir for this module"""
    return TEST_DATA


class FakeRegistry:
    """In-memory RegistryClient recording deletions"""

    def __init__(self, tags: dict[str, list[str]], fail: tuple[str, ...] = ()):
        self.tags = {repo: list(t) for repo, t in tags.items()}
        self.fail = set(fail)
        self.deleted: list[str] = []
        self.delete_calls: list[str] = []
        self.after_delete = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def list_tags(self, ref, cancel=None):
        check_canceled(cancel)
        key = f"{ref.registry}/{ref.repository}"
        if key not in self.tags:
            raise httpx.HTTPStatusError(
                "404 Not Found",
                request=httpx.Request("GET", f"https://{ref.registry}/v2/"),
                response=httpx.Response(404),
            )
        return list(self.tags[key])

    def delete_tag(self, ref, cancel=None):
        check_canceled(cancel)
        self.delete_calls.append(ref.tag)
        if ref.tag in self.fail:
            raise httpx.ConnectError(f"connection reset deleting {ref.tag}")
        self.deleted.append(ref.tag)
        self.tags[f"{ref.registry}/{ref.repository}"].remove(ref.tag)
        if self.after_delete is not None:
            self.after_delete(ref.tag)


@pytest.fixture
def registry():
    return FakeRegistry(
        {"localhost:5000/repo": ["stable", "latest", "old", "v1.0.0", "v2.0.0"]}
    )
