"""Tag filtering with allow/deny regular expressions and semver ranges"""
import operator
import re
from typing import Iterable

from semver import Version

from ocisync.errors import InvalidPatternError
from ocisync.sync.config import ConfigTagSet

OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}
WILDCARDS = {"x", "X", "*"}
COMPARATOR_RE = re.compile(
    r"(?P<op>!=|==|>=|<=|=|>|<|~|\^)?v?"
    r"(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?"
)
# Allow whitespace between an operator and its version, e.g. ">= 1.2"
OPERATOR_SPACE_RE = re.compile(r"(!=|==|>=|<=|=|>|<|~|\^)\s+")
# Inclusive hyphen range, "1.2 - 2.3.4" is ">=1.2 <=2.3.4"
HYPHEN_RE = re.compile(r"(\S+)\s+-\s+(\S+)")

Constraint = tuple[str, Version]


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern]:
    """Compile regular expressions, naming the first invalid pattern"""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e
    return compiled


def first_match(value: str, patterns: Iterable[re.Pattern]) -> re.Pattern | None:
    for pattern in patterns:
        if pattern.search(value):
            return pattern
    return None


def parse_tag_version(tag: str) -> Version | None:
    """Parse a tag like `v1.2` or `1.2.3-rc1` as a semantic version"""
    try:
        return Version.parse(tag.removeprefix("v"), optional_minor_and_patch=True)
    except (ValueError, TypeError):
        return None


class SemverRange:
    """Version range, e.g. `>=1.2 <2`, `^1.4 || ~2.0.1`, `1.x`

    Comparators within a set are joined by spaces or commas and must all
    match, `A - B` is an inclusive range. Sets are joined by `||` and any
    of them may match. Prerelease versions only match a set with a
    prerelease in one of its bounds.
    """

    def __init__(self, value: str):
        self.value = value
        self.sets: list[list[Constraint]] = []
        for part in value.split("||"):
            part = HYPHEN_RE.sub(r">=\1 <=\2", part.strip())
            part = OPERATOR_SPACE_RE.sub(r"\1", part)
            if not part:
                raise InvalidPatternError(value, "empty comparator set")
            constraints: list[Constraint] = []
            for comparator in re.split(r"[\s,]+", part):
                if comparator:
                    constraints.extend(self._parse_comparator(comparator))
            self.sets.append(constraints)

    def __str__(self):
        return self.value

    def _parse_comparator(self, comparator: str) -> list[Constraint]:
        match = COMPARATOR_RE.fullmatch(comparator)
        if not match:
            raise InvalidPatternError(self.value, f"invalid comparator {comparator!r}")
        op = match["op"] or "="
        parts = [match["major"], match["minor"], match["patch"]]
        # Number of leading version parts that are set, 1.2.x -> 2
        given = 0
        for part in parts:
            if part is None or part in WILDCARDS:
                break
            given += 1
        if given == 0:
            if op in ("!=", "<", ">"):
                raise InvalidPatternError(self.value, f"invalid wildcard {comparator!r}")
            return []
        if given < 3 and op == "!=":
            raise InvalidPatternError(self.value, f"invalid wildcard {comparator!r}")

        numbers = [int(p) for p in parts[:given]] + [0] * (3 - given)
        prerelease = match["prerelease"] if given == 3 else None
        low = Version(*numbers, prerelease=prerelease)
        major, minor, _ = numbers

        if op in ("=", "=="):
            if given == 3:
                return [("==", low)]
            return [(">=", low), ("<", _bump(numbers, given - 1))]
        if op == "!=":
            return [("!=", low)]
        if op == ">":
            return [(">", low)] if given == 3 else [(">=", _bump(numbers, given - 1))]
        if op == ">=":
            return [(">=", low)]
        if op == "<":
            return [("<", low)]
        if op == "<=":
            return [("<=", low)] if given == 3 else [("<", _bump(numbers, given - 1))]
        if op == "~":
            return [(">=", low), ("<", _bump(numbers, 0 if given == 1 else 1))]
        # caret, allow changes that do not modify the left-most non-zero part
        if major > 0 or given == 1:
            return [(">=", low), ("<", _bump(numbers, 0))]
        if minor > 0 or given == 2:
            return [(">=", low), ("<", _bump(numbers, 1))]
        return [(">=", low), ("<", _bump(numbers, 2))]

    def contains(self, version: Version) -> bool:
        for constraints in self.sets:
            if version.prerelease and not any(
                bound.prerelease for _, bound in constraints
            ):
                continue
            if all(OPERATORS[op](version, bound) for op, bound in constraints):
                return True
        return False


def _bump(numbers: list[int], position: int) -> Version:
    bumped = numbers[:position] + [numbers[position] + 1]
    return Version(*(bumped + [0] * (3 - len(bumped))))


def filter_tag_list(tag_set: ConfigTagSet, tags: Iterable[str]) -> list[str]:
    """Return the tags wanted by a tag set, in their original order

    A tag must match one of the `allow` patterns (when any are given),
    none of the `deny` patterns and fall within `semverRange` (when set).
    """
    allow = compile_patterns(tag_set.allow)
    deny = compile_patterns(tag_set.deny)
    semver_range = SemverRange(tag_set.semverRange) if tag_set.semverRange else None

    result = []
    for tag in tags:
        if allow and first_match(tag, allow) is None:
            continue
        if first_match(tag, deny) is not None:
            continue
        if semver_range is not None:
            version = parse_tag_version(tag)
            if version is None or not semver_range.contains(version):
                continue
        result.append(tag)
    return result
