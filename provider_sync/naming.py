"""
Repository naming rules per provider

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Pattern, Tuple

# https://docs.gitlab.com/ee/user/reserved_names.html
GITLAB_RESERVED_PROJECT_NAMES = frozenset(
    {
        "badges",
        "blame",
        "blob",
        "builds",
        "commits",
        "create",
        "create_dir",
        "edit",
        "files",
        "find_file",
        "new",
        "preview",
        "raw",
        "refs",
        "tree",
        "update",
        "wikis",
    }
)

GITEA_RESERVED_NAMES = frozenset({".", "..", "-"})

SAFE_CHARACTERS = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True)
class NamingValidator:
    """Naming rules for one provider.

    A name is valid when it passes both the structural check (length,
    reserved words, prefixes and suffixes) and the character-set check.
    """

    provider: str
    max_length: int
    allowed_characters: Pattern
    reserved_names: FrozenSet[str] = frozenset()
    reserved_suffixes: Tuple[str, ...] = ()
    forbidden_prefixes: Tuple[str, ...] = ()
    extra_rules: Tuple[Pattern, ...] = field(default=())

    def is_valid(self, name: str) -> bool:
        return self.is_valid_structure(name) and self.is_valid_characters(name)

    def is_valid_structure(self, name: str) -> bool:
        if not name or len(name) > self.max_length:
            return False
        if name.lower() in self.reserved_names:
            return False
        if name.lower().endswith(self.reserved_suffixes):
            return False
        if self.forbidden_prefixes and name.startswith(self.forbidden_prefixes):
            return False
        return all(rule.search(name) for rule in self.extra_rules)

    def is_valid_characters(self, name: str) -> bool:
        return bool(name) and bool(self.allowed_characters.match(name))


GITHUB_VALIDATOR = NamingValidator(
    provider="github",
    max_length=100,
    allowed_characters=SAFE_CHARACTERS,
    reserved_names=frozenset({".", ".."}),
)

GITLAB_VALIDATOR = NamingValidator(
    provider="gitlab",
    max_length=255,
    allowed_characters=SAFE_CHARACTERS,
    reserved_names=GITLAB_RESERVED_PROJECT_NAMES,
    reserved_suffixes=(".git", ".atom"),
    extra_rules=(
        # starts with a letter, digit or underscore and ends with a letter or digit
        re.compile(r"^[A-Za-z0-9_]"),
        re.compile(r"[A-Za-z0-9]$"),
        # no consecutive special characters
        re.compile(r"^(?!.*[._-]{2})"),
    ),
)

GITEA_VALIDATOR = NamingValidator(
    provider="gitea",
    max_length=100,
    allowed_characters=SAFE_CHARACTERS,
    reserved_names=GITEA_RESERVED_NAMES,
    reserved_suffixes=(".git", ".wiki", ".rss", ".atom"),
)

FILESYSTEM_VALIDATOR = NamingValidator(
    provider="filesystem",
    max_length=255,
    allowed_characters=re.compile(r"^[^/\\\x00-\x1f\x7f]+$"),
    reserved_names=frozenset({".", ".."}),
    forbidden_prefixes=("-",),
)

VALIDATORS: Dict[str, NamingValidator] = {
    "github": GITHUB_VALIDATOR,
    "gitlab": GITLAB_VALIDATOR,
    "gitea": GITEA_VALIDATOR,
    "directory": FILESYSTEM_VALIDATOR,
    "archive": FILESYSTEM_VALIDATOR,
    "generic-git": FILESYSTEM_VALIDATOR,
}


def validator_for(provider_type) -> NamingValidator:
    """Select the naming validator for a provider type (enum or string)."""
    key = str(getattr(provider_type, "value", provider_type)).lower()
    try:
        return VALIDATORS[key]
    except KeyError:
        raise ValueError(f"No naming rules for provider type: {provider_type}") from None


def is_valid_name(provider_type, name: str) -> bool:
    return validator_for(provider_type).is_valid(name)
