"""
auth/policy.py -- Path-based access rules.

An AccessPolicy is an ordered list of (pattern, access) rules. decide() walks
the list top-to-bottom and returns the access level of the first rule whose
pattern matches the request path. Order is the whole contract: a catch-all
rule placed first would shadow every rule after it.

Patterns are ant-style:
  /login        literal path, matched exactly (a trailing slash is a different path)
  /static/*     one segment, any characters except "/"
  /api/**       zero or more whole segments below /api
  /**           every path

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum


class Access(str, Enum):
    PERMIT = "permit"
    AUTHENTICATED = "authenticated"


PUBLIC_PATHS = ("/register", "/login", "/error")


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate an ant-style path pattern into an anchored regex."""
    if not pattern.startswith("/"):
        raise ValueError(f"path pattern must start with '/': {pattern!r}")
    if pattern == "/":
        return re.compile(r"^/$")
    parts: list[str] = []
    for segment in pattern[1:].split("/"):
        if segment == "**":
            parts.append(r"(?:/[^/]*)*")
        elif "**" in segment:
            raise ValueError(f"'**' must be a whole path segment: {pattern!r}")
        else:
            parts.append("/" + "[^/]*".join(re.escape(p) for p in segment.split("*")))
    return re.compile("^" + "".join(parts) + "$")


@dataclass(frozen=True)
class AccessRule:
    pattern: str
    access: Access
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_pattern(self.pattern))

    def matches(self, path: str) -> bool:
        return self._regex.match(path) is not None


class AccessPolicy:
    """First-match-wins rule list.

    default applies when no rule matches. The built-in policy ends with a
    "/**" rule, so its default is only reached for paths that do not start
    with "/".
    """

    def __init__(self, rules: list[AccessRule], default: Access = Access.AUTHENTICATED) -> None:
        self.rules = list(rules)
        self.default = default

    def decide(self, path: str) -> Access:
        for rule in self.rules:
            if rule.matches(path):
                return rule.access
        return self.default

    def is_public(self, path: str) -> bool:
        return self.decide(path) is Access.PERMIT


def build_default_policy(public_paths: tuple[str, ...] = PUBLIC_PATHS) -> AccessPolicy:
    """Public registration, login and error pages; everything else needs a session."""
    rules = [AccessRule(p, Access.PERMIT) for p in public_paths]
    rules.append(AccessRule("/**", Access.AUTHENTICATED))
    return AccessPolicy(rules)
