import threading

import httpx
import pytest

from ocisync.errors import CanceledError, CleanupError, InvalidPatternError
from ocisync.sync.cleanup import CleanupEngine
from ocisync.sync.config import ConfigSync, ConfigTagSet, SyncIndex

TARGET = "localhost:5000/repo"


def rule(**kwargs) -> ConfigSync:
    return ConfigSync(target=TARGET, cleanupTags=True, **kwargs)


def test_union_of_sibling_rules(registry):
    stable = rule(tags=ConfigTagSet(allow=["^stable$"]))
    latest = rule(tags=ConfigTagSet(allow=["^latest$"]))
    engine = CleanupEngine(registry, SyncIndex([stable, latest]))

    report = engine.cleanup_tags(stable, TARGET)

    assert report.ok
    assert registry.deleted == ["old", "v1.0.0", "v2.0.0"]
    assert registry.tags[TARGET] == ["stable", "latest"]


def test_union_of_sibling_rules_three_tags(registry):
    registry.tags[TARGET] = ["stable", "latest", "old"]
    stable = rule(tags=ConfigTagSet(allow=["^stable$"]))
    latest = rule(tags=ConfigTagSet(allow=["^latest$"]))
    engine = CleanupEngine(registry, SyncIndex([stable, latest]))

    engine.cleanup_tags(latest, TARGET)

    assert registry.deleted == ["old"]


def test_no_filters_keeps_everything(registry):
    only = rule()
    engine = CleanupEngine(registry, SyncIndex([only]))

    report = engine.cleanup_tags(only, TARGET)

    assert report.ok
    assert report.scheduled == []
    assert registry.delete_calls == []


def test_unfiltered_sibling_does_not_protect(registry):
    """A rule without filters adds no wanted tags when a sibling filters"""
    filtered = rule(tags=ConfigTagSet(allow=["^stable$"]))
    unfiltered = rule()
    engine = CleanupEngine(registry, SyncIndex([filtered, unfiltered]))

    engine.cleanup_tags(unfiltered, TARGET)

    assert registry.deleted == ["latest", "old", "v1.0.0", "v2.0.0"]


def test_tag_sets_and_tags_combined(registry):
    combined = rule(
        tags=ConfigTagSet(allow=["^stable$"]),
        tagSets=[ConfigTagSet(semverRange=">=2.0.0"), ConfigTagSet(allow=["^lat"])],
    )
    engine = CleanupEngine(registry, SyncIndex([combined]))

    engine.cleanup_tags(combined, TARGET)

    assert registry.deleted == ["old", "v1.0.0"]


def test_exclusions_pooled_across_siblings(registry):
    invoking = rule(tags=ConfigTagSet(allow=["^stable$"]))
    sibling = rule(
        tags=ConfigTagSet(allow=["^latest$"]), cleanupTagsExclude=[r"^v\d", "^old$"]
    )
    engine = CleanupEngine(registry, SyncIndex([invoking, sibling]))

    report = engine.cleanup_tags(invoking, TARGET)

    assert registry.deleted == []
    assert report.excluded == {"old": "^old$", "v1.0.0": r"^v\d", "v2.0.0": r"^v\d"}


def test_rule_missing_from_index_is_considered(registry):
    indexed = rule(tags=ConfigTagSet(allow=["^stable$"]))
    invoking = rule(tags=ConfigTagSet(allow=["^old$"]))
    engine = CleanupEngine(registry, SyncIndex([indexed]))

    engine.cleanup_tags(invoking, TARGET)

    assert registry.deleted == ["latest", "v1.0.0", "v2.0.0"]


def test_other_targets_are_ignored(registry):
    invoking = rule(tags=ConfigTagSet(allow=["^stable$"]))
    other = ConfigSync(target="localhost:5000/other", tags=ConfigTagSet(allow=["^old$"]))
    engine = CleanupEngine(registry, SyncIndex([invoking, other]))

    engine.cleanup_tags(invoking, TARGET)

    assert "old" in registry.deleted


def test_failure_isolation(registry):
    registry.fail = {"old"}
    only = rule(tags=ConfigTagSet(allow=["^stable$", "^latest$"]))
    engine = CleanupEngine(registry, SyncIndex([only]))

    report = engine.cleanup_tags(only, TARGET)

    assert registry.delete_calls == ["old", "v1.0.0", "v2.0.0"]
    assert registry.deleted == ["v1.0.0", "v2.0.0"]
    assert not report.ok
    assert [f.tag for f in report.failures] == ["old"]
    assert isinstance(report.failures[0].error, httpx.ConnectError)
    with pytest.raises(CleanupError) as exc_info:
        report.raise_for_failures()
    assert exc_info.value.failures == report.failures
    assert "old" in str(exc_info.value)


def test_cancel_mid_deletion(registry):
    cancel = threading.Event()
    registry.after_delete = lambda tag: cancel.set()
    only = rule(tags=ConfigTagSet(allow=["^stable$", "^latest$"]))
    engine = CleanupEngine(registry, SyncIndex([only]))

    report = engine.cleanup_tags(only, TARGET, cancel=cancel)

    assert registry.deleted == ["old"]
    assert registry.delete_calls == ["old"]
    assert report.canceled
    assert len(report.failures) == 1
    assert report.failures[0].tag == "v1.0.0"
    assert isinstance(report.failures[0].error, CanceledError)


def test_cancel_keeps_earlier_failures(registry):
    registry.fail = {"old"}
    cancel = threading.Event()
    registry.after_delete = lambda tag: cancel.set()
    only = rule(tags=ConfigTagSet(allow=["^stable$", "^latest$"]))
    engine = CleanupEngine(registry, SyncIndex([only]))

    report = engine.cleanup_tags(only, TARGET, cancel=cancel)

    assert registry.deleted == ["v1.0.0"]
    assert [f.tag for f in report.failures] == ["old", "v2.0.0"]
    assert isinstance(report.failures[1].error, CanceledError)


def test_list_failure_is_fatal(registry):
    missing = ConfigSync(target="localhost:5000/missing", tags=ConfigTagSet(allow=["x"]))
    engine = CleanupEngine(registry, SyncIndex([missing]))

    with pytest.raises(httpx.HTTPStatusError):
        engine.cleanup_tags(missing, "localhost:5000/missing")
    assert registry.delete_calls == []


@pytest.mark.parametrize(
    "rules",
    [
        [rule(tags=ConfigTagSet(allow=["^stable$"]), cleanupTagsExclude=["[bad"])],
        [rule(tags=ConfigTagSet(allow=["^stable$"])), rule(cleanupTagsExclude=["[bad"])],
        [rule(tags=ConfigTagSet(allow=["[bad"]))],
    ],
)
def test_invalid_pattern_is_fatal(registry, rules):
    engine = CleanupEngine(registry, SyncIndex(rules))

    with pytest.raises(InvalidPatternError) as exc_info:
        engine.cleanup_tags(rules[0], TARGET)
    assert exc_info.value.pattern == "[bad"
    assert registry.delete_calls == []


def test_invalid_target_is_fatal(registry):
    bad = ConfigSync(target="Not A Reference")
    engine = CleanupEngine(registry, SyncIndex([bad]))

    with pytest.raises(ValueError):
        engine.cleanup_tags(bad, bad.target)


def test_dry_run(registry):
    only = rule(tags=ConfigTagSet(allow=["^stable$"]))
    engine = CleanupEngine(registry, SyncIndex([only]), dry_run=True)

    report = engine.cleanup_tags(only, TARGET)

    assert report.scheduled == ["latest", "old", "v1.0.0", "v2.0.0"]
    assert report.deleted == []
    assert registry.delete_calls == []


def test_run_cleans_enabled_targets(registry):
    registry.tags["localhost:5000/other"] = ["a", "b"]
    enabled = rule(tags=ConfigTagSet(allow=["^stable$"]))
    disabled = ConfigSync(target="localhost:5000/other", tags=ConfigTagSet(allow=["a"]))
    engine = CleanupEngine(registry, SyncIndex([enabled, disabled]))

    reports = engine.run()

    assert [r.target for r in reports] == [TARGET]
    assert registry.tags["localhost:5000/other"] == ["a", "b"]
