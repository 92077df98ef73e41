import pytest

from ocisync.oci.platform import Platform


@pytest.mark.parametrize(
    "value,expected",
    [
        ("linux/amd64", Platform(os="linux", architecture="amd64")),
        ("linux/arm64/v8", Platform(os="linux", architecture="arm64", variant="v8")),
        (" windows/amd64 ", Platform(os="windows", architecture="amd64")),
    ],
)
def test_parse(value, expected):
    assert Platform.parse(value) == expected
    assert str(Platform.parse(value)) == value.strip()


@pytest.mark.parametrize("value", ["linux", "linux/", "/amd64", "linux/arm/v7/extra", ""])
def test_parse_invalid(value):
    with pytest.raises(ValueError):
        Platform.parse(value)


def test_json_aliases():
    platform = Platform.model_validate(
        {
            "os": "windows",
            "architecture": "amd64",
            "os.version": "10.0.17763.1234",
            "os.features": ["win32k"],
        }
    )
    assert platform.osVersion == "10.0.17763.1234"
    assert platform.osFeatures == ["win32k"]
    assert platform.model_dump(by_alias=True, exclude_none=True) == {
        "os": "windows",
        "architecture": "amd64",
        "os.version": "10.0.17763.1234",
        "os.features": ["win32k"],
    }


@pytest.mark.parametrize(
    "a,b,expect",
    [
        ("linux/amd64", "linux/amd64", True),
        ("linux/amd64", "linux/amd64/v1", True),
        ("linux/arm64", "linux/arm64/v8", True),
        ("linux/aarch64", "linux/arm64", True),
        ("linux/x86_64", "linux/amd64", True),
        ("linux/arm", "linux/arm/v7", True),
        ("linux/arm/v6", "linux/arm/v7", False),
        ("linux/amd64", "windows/amd64", False),
        ("darwin/amd64", "linux/amd64", False),
    ],
)
def test_match(a, b, expect):
    assert Platform.parse(a).match(Platform.parse(b)) is expect
    assert Platform.parse(b).match(Platform.parse(a)) is expect


@pytest.mark.parametrize(
    "host,target,expect",
    [
        ("linux/amd64", "linux/amd64", True),
        ("darwin/amd64", "linux/amd64", True),
        ("darwin/arm64", "linux/arm64", True),
        ("macos/arm64", "linux/arm64", True),
        ("linux/amd64", "darwin/amd64", False),
        ("windows/amd64", "linux/amd64", False),
        ("darwin/amd64", "linux/arm64", False),
        ("linux/amd64/v3", "linux/amd64/v2", True),
        ("linux/amd64/v2", "linux/amd64/v3", False),
        ("linux/arm/v7", "linux/arm/v6", True),
        ("linux/arm/v6", "linux/arm/v7", False),
        ("linux/arm64", "linux/arm/v7", True),
        ("linux/arm", "linux/arm64", False),
    ],
)
def test_compatible(host, target, expect):
    assert Platform.parse(host).compatible(Platform.parse(target)) is expect


def test_windows_os_version():
    host = Platform(os="windows", architecture="amd64", osVersion="10.0.17763.100")
    same_build = Platform(os="windows", architecture="amd64", osVersion="10.0.17763.2")
    other_build = Platform(os="windows", architecture="amd64", osVersion="10.0.20348.1")
    assert host.match(same_build)
    assert not host.match(other_build)
    assert not host.compatible(other_build)
