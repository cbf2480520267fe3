"""
Version parsing for resource names.

Templates and their clones carry a version suffix at the end of the name,
for example ``Interview Prep_v2`` or ``SendData_v1.2.3``. Names without a
suffix behave as version ``0``.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

VERSION_SUFFIX_PATTERN = re.compile(r"_v(\d+(?:\.\d+)*)\Z", re.ASCII)
VERSION_PATTERN = re.compile(r"\d+(?:\.\d+)*", re.ASCII)

ZERO_VERSION = "0"


def parse_version_from_name(name: Optional[str]) -> Optional[str]:
    """
    Extract the version from a trailing ``_v<N>[.<N>]*`` suffix.

    Returns the dotted digits without the ``v`` prefix, or None when the
    name carries no parseable suffix.
    """
    if not name or not isinstance(name, str):
        return None

    match = VERSION_SUFFIX_PATTERN.search(name)
    return match.group(1) if match else None


def _components(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two dotted version strings.

    Missing trailing components count as zero, so ``1 == 1.0 == 1.0.0``.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2
    """
    parts1 = list(_components(v1))
    parts2 = list(_components(v2))

    max_length = max(len(parts1), len(parts2))
    parts1.extend([0] * (max_length - len(parts1)))
    parts2.extend([0] * (max_length - len(parts2)))

    for left, right in zip(parts1, parts2):
        if left > right:
            return 1
        if left < right:
            return -1
    return 0


def get_base_name(name: Optional[str]) -> Optional[str]:
    """Strip one trailing version suffix; names without one are returned unchanged."""
    if not name or not isinstance(name, str):
        return name

    return VERSION_SUFFIX_PATTERN.sub("", name, count=1)


def is_valid_version(version: Optional[str]) -> bool:
    """True for dotted integer groups with no ``v`` prefix and no empty components."""
    if not version or not isinstance(version, str):
        return False

    return VERSION_PATTERN.fullmatch(version) is not None


def build_versioned_name(base_name: str, version: Optional[str]) -> str:
    """Append ``_v<version>`` unless the version is absent, empty or ``0``."""
    if not version or version == ZERO_VERSION:
        return base_name

    return f"{base_name}_v{version}"


@dataclass(frozen=True, eq=False)
class Version:
    """A parsed version, ordered component-wise with zero padding."""
    raw: str

    @classmethod
    def from_name(cls, name: Optional[str]) -> "Version":
        return cls(parse_version_from_name(name) or ZERO_VERSION)

    @classmethod
    def parse(cls, version: Optional[str]) -> "Version":
        if not version:
            return cls(ZERO_VERSION)
        if not is_valid_version(version):
            raise ValueError(f"Invalid version string: {version!r}")
        return cls(version)

    @property
    def components(self) -> Tuple[int, ...]:
        return _components(self.raw)

    def compare(self, other: "Version") -> int:
        return compare_versions(self.raw, other.raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __hash__(self) -> int:
        parts = list(self.components)
        while len(parts) > 1 and parts[-1] == 0:
            parts.pop()
        return hash(tuple(parts))

    def __lt__(self, other: "Version") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "Version") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "Version") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "Version") -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        return self.raw
