"""Sync configuration

Example::

    version: 1
    creds:
      - registry: localhost:5000
        tls: disabled
    sync:
      - source: docker.io/library/alpine
        target: localhost:5000/library/alpine
        tags:
          allow: ["^3\\."]
        cleanupTags: true
        cleanupTagsExclude: ["^keep-"]
"""
import logging
from pathlib import Path
from typing import Iterable, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ConfigTagSet(BaseModel):
    model_config = ConfigDict(extra="forbid")

    allow: list[str] = []
    deny: list[str] = []
    semverRange: str = ""

    def is_empty(self) -> bool:
        return not (self.allow or self.deny or self.semverRange)


class ConfigCreds(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    registry: str
    user: str | None = None
    password: str | None = Field(default=None, alias="pass")
    tls: Literal["enabled", "disabled"] = "enabled"


class ConfigSync(BaseModel):
    """A single source -> target sync rule"""

    model_config = ConfigDict(extra="forbid")

    source: str = ""
    target: str
    type: Literal["repository", "image"] = "repository"
    tags: ConfigTagSet = Field(default_factory=ConfigTagSet)
    tagSets: list[ConfigTagSet] = []
    cleanupTags: bool = False
    cleanupTagsExclude: list[str] = []

    def filter_sets(self) -> list[ConfigTagSet]:
        """The tag sets, including the top-level `tags` filter when it is set"""
        sets = list(self.tagSets)
        if not self.tags.is_empty():
            sets.append(self.tags)
        return sets


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = 1
    creds: list[ConfigCreds] = []
    sync: list[ConfigSync] = []

    @classmethod
    def load(cls, path: Path) -> "Config":
        logger.debug("Loading config from %s", path)
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def hosts(self) -> dict[str, dict]:
        """Client settings per registry host"""
        return {
            cred.registry: {
                "username": cred.user,
                "password": cred.password,
                "insecure": cred.tls == "disabled",
            }
            for cred in self.creds
        }


class SyncIndex:
    """Sync rules grouped by their literal target string"""

    def __init__(self, rules: Iterable[ConfigSync] = ()):
        self._targets: dict[str, list[ConfigSync]] = {}
        for rule in rules:
            self._targets.setdefault(rule.target, []).append(rule)

    @classmethod
    def from_config(cls, config: Config) -> "SyncIndex":
        return cls(config.sync)

    def rules_for(self, target: str) -> list[ConfigSync]:
        return list(self._targets.get(target, []))

    def targets(self) -> list[str]:
        return list(self._targets)
