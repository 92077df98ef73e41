"""Tag cleanup for sync targets

Several sync rules may share a target repository. Cleanup always considers
the whole set of rules for a target: a tag is only deleted when none of the
rules' filters want it and none of their exclusion patterns match it.
"""
import logging
import threading
from dataclasses import dataclass, field

from ocisync.errors import CanceledError, CleanupError
from ocisync.oci.client import RegistryClient
from ocisync.oci.reference import Reference
from ocisync.sync.config import ConfigSync, SyncIndex
from ocisync.sync.tags import compile_patterns, filter_tag_list, first_match

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TagFailure:
    tag: str
    error: Exception

    def __str__(self):
        return f"{self.tag}: {self.error}"


@dataclass
class CleanupReport:
    """Outcome of cleaning up a single target"""

    target: str
    scheduled: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    excluded: dict[str, str] = field(default_factory=dict)
    failures: list[TagFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def canceled(self) -> bool:
        return any(isinstance(f.error, CanceledError) for f in self.failures)

    def raise_for_failures(self):
        """Raise a CleanupError holding every failure, if there were any"""
        if self.failures:
            raise CleanupError(self.target, self.failures)


class CleanupEngine:
    def __init__(
        self, client: RegistryClient, sync_index: SyncIndex, dry_run: bool = False
    ):
        self.client = client
        self.sync_index = sync_index
        self.dry_run = dry_run

    def siblings(self, sync: ConfigSync, target: str) -> list[ConfigSync]:
        """All sync rules targeting `target`, always including `sync`"""
        rules = self.sync_index.rules_for(target)
        if sync not in rules:
            rules.insert(0, sync)
        return rules

    def wanted_tags(self, rules: list[ConfigSync], tags: list[str]) -> list[str]:
        """Union of the tags wanted by any of the rules, in first-seen order

        Rules without any filter impose no restriction, when none of the
        rules has a filter every tag is wanted.
        """
        filter_sets = [s for rule in rules for s in rule.filter_sets()]
        if not filter_sets:
            return list(tags)
        wanted: dict[str, None] = {}
        for tag_set in filter_sets:
            for tag in filter_tag_list(tag_set, tags):
                wanted.setdefault(tag)
        return list(wanted)

    def cleanup_tags(
        self,
        sync: ConfigSync,
        target: str,
        cancel: threading.Event | None = None,
    ) -> CleanupReport:
        """Delete the tags of `target` that no sync rule for it wants

        Reference, tag listing and pattern errors are raised before anything
        is deleted. Failed deletions are collected in the report and do not
        stop the remaining deletions, cancellation stops at the next tag.
        """
        try:
            ref = Reference.from_string(target)
        except ValueError as e:
            logger.error("Failed parsing target %s for cleanup: %s", target, e)
            raise

        try:
            tags = self.client.list_tags(ref, cancel=cancel)
        except Exception as e:
            logger.error("Failed getting target tags for cleanup of %s: %s", ref, e)
            raise

        rules = self.siblings(sync, target)
        if len(rules) > 1:
            logger.debug("Found %d sync entries for target %s", len(rules), ref)

        try:
            wanted = set(self.wanted_tags(rules, tags))
            exclusions = compile_patterns(
                pattern for rule in rules for pattern in rule.cleanupTagsExclude
            )
        except ValueError as e:
            logger.error("Failed processing tag filters for cleanup of %s: %s", ref, e)
            raise

        report = CleanupReport(target=target)
        for tag in tags:
            if tag in wanted:
                continue
            pattern = first_match(tag, exclusions)
            if pattern is not None:
                logger.debug(
                    "Tag %s of %s excluded from cleanup by %r", tag, ref, pattern.pattern
                )
                report.excluded[tag] = pattern.pattern
                continue
            report.scheduled.append(tag)

        if not report.scheduled:
            logger.debug("No tags require cleanup on %s", ref)
            return report

        for position, tag in enumerate(report.scheduled):
            if cancel is not None and cancel.is_set():
                remaining = len(report.scheduled) - position
                logger.warning(
                    "Cleanup of %s canceled, %d tag(s) not deleted", ref, remaining
                )
                report.failures.append(
                    TagFailure(tag, CanceledError(f"{remaining} tag(s) not deleted"))
                )
                return report

            if self.dry_run:
                logger.info("Would delete tag %s from %s", tag, ref)
                continue

            logger.info("Deleting tag %s from %s", tag, ref)
            try:
                self.client.delete_tag(ref.with_tag(tag), cancel=cancel)
            except CanceledError as e:
                logger.warning("Cleanup of %s canceled while deleting %s", ref, tag)
                report.failures.append(TagFailure(tag, e))
                return report
            except Exception as e:
                logger.error("Failed to delete tag %s from %s: %s", tag, ref, e)
                report.failures.append(TagFailure(tag, e))
            else:
                logger.debug("Deleted tag %s from %s", tag, ref)
                report.deleted.append(tag)
        return report

    def run(self, cancel: threading.Event | None = None) -> list[CleanupReport]:
        """Clean up every target that has a rule with `cleanupTags` enabled"""
        reports = []
        for target in self.sync_index.targets():
            rule = next(
                (r for r in self.sync_index.rules_for(target) if r.cleanupTags), None
            )
            if rule is None:
                continue
            if cancel is not None and cancel.is_set():
                break
            reports.append(self.cleanup_tags(rule, target, cancel=cancel))
        return reports
