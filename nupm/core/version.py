"""
Semantic versions and version ranges.

Versions follow the NuGet flavor of semver: one to four numeric parts, an
optional -prerelease tag and optional +metadata (ignored when comparing).
Missing numeric parts compare as zero, so "1.0" == "1.0.0".

Ranges accept the notations found in package manifests:
    1.0                 -> >= 1.0
    [1.0]               -> == 1.0
    [1.0,2.0)           -> >= 1.0 and < 2.0
    (,2.0]              -> <= 2.0
    ^1.2.3              -> >= 1.2.3 and < 2.0.0
    ~1.2.3              -> >= 1.2.3 and < 1.3.0
    >=1.0 <2.0          -> comparator list (comma or space separated)
"""

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Callable, List, Optional, Tuple, Union

# Regex for "1.2.3.4-beta.1+build.5"
VERSION_REGEX = re.compile(
    r'^(\d+(?:\.\d+){0,3})(?:-([0-9A-Za-z][0-9A-Za-z.-]*))?(?:\+([0-9A-Za-z.-]+))?$'
)

# Interval notation: [min,max], (min,max), [exact]
INTERVAL_REGEX = re.compile(r'^([\[(])\s*([^,\[\]()]*?)\s*(?:(,)\s*([^,\[\]()]*?)\s*)?([\])])$')

# Comparator: ">= 1.0", "<2", "==1.0.0"
COMPARATOR_REGEX = re.compile(r'(>=|<=|==|=|>|<)\s*([0-9][0-9A-Za-z.+-]*)')


class InvalidVersion(ValueError):
    """A version or version range string could not be parsed."""


def _prerelease_key(prerelease: str) -> Tuple:
    """Split a prerelease tag into comparable identifiers.

    Numeric identifiers sort before alphanumeric ones (semver rule), and
    alphanumeric identifiers compare case-insensitively.
    """
    parts = []
    for ident in prerelease.split('.'):
        if ident.isdigit():
            parts.append((0, int(ident), ''))
        else:
            parts.append((1, 0, ident.lower()))
    return tuple(parts)


@total_ordering
class SemanticVersion:
    """A comparable package version."""

    __slots__ = ('original', 'release', 'prerelease', 'metadata', '_key')

    def __init__(self, text: str):
        text = (text or '').strip()
        match = VERSION_REGEX.match(text)
        if not match:
            raise InvalidVersion(f"Invalid version: '{text}'")

        numbers = [int(p) for p in match.group(1).split('.')]
        self.original = text
        self.release: Tuple[int, ...] = tuple(numbers)
        self.prerelease: str = match.group(2) or ''
        self.metadata: str = match.group(3) or ''

        padded = tuple(numbers + [0] * (4 - len(numbers)))
        if self.prerelease:
            self._key = (padded, 0, _prerelease_key(self.prerelease))
        else:
            self._key = (padded, 1, ())

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def major(self) -> int:
        return self.release[0]

    @property
    def minor(self) -> int:
        return self.release[1] if len(self.release) > 1 else 0

    @property
    def patch(self) -> int:
        return self.release[2] if len(self.release) > 2 else 0

    @property
    def normalized(self) -> str:
        """Normalized form: at least three numeric parts, no metadata."""
        parts = list(self.release)
        while len(parts) < 3:
            parts.append(0)
        if len(parts) == 4 and parts[3] == 0:
            parts = parts[:3]
        text = '.'.join(str(p) for p in parts)
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text

    def __eq__(self, other):
        if isinstance(other, str):
            other = try_parse_version(other)
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other):
        if isinstance(other, str):
            other = SemanticVersion(other)
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key < other._key

    def __hash__(self):
        return hash(self._key)

    def __str__(self):
        return self.original

    def __repr__(self):
        return f"SemanticVersion('{self.original}')"


VersionLike = Union[str, SemanticVersion]


def parse_version(value: VersionLike) -> SemanticVersion:
    """Parse a version, raising InvalidVersion on malformed input."""
    if isinstance(value, SemanticVersion):
        return value
    return SemanticVersion(value)


def try_parse_version(value: VersionLike) -> Optional[SemanticVersion]:
    """Parse a version, returning None on malformed input."""
    try:
        return parse_version(value)
    except InvalidVersion:
        return None


def _bump(version: SemanticVersion, index: int) -> SemanticVersion:
    """Return the smallest release above every version sharing the first `index+1` parts."""
    parts = list(version.release)
    while len(parts) < 3:
        parts.append(0)
    parts = parts[:index + 1]
    parts[index] += 1
    while len(parts) < 3:
        parts.append(0)
    return SemanticVersion('.'.join(str(p) for p in parts))


@dataclass(frozen=True)
class VersionSpec:
    """A version range with optional lower and upper bounds."""
    min_version: Optional[SemanticVersion] = None
    min_inclusive: bool = True
    max_version: Optional[SemanticVersion] = None
    max_inclusive: bool = True
    original: str = ''

    @property
    def is_unbounded(self) -> bool:
        return self.min_version is None and self.max_version is None

    @property
    def is_exact(self) -> bool:
        return (self.min_version is not None
                and self.min_version == self.max_version
                and self.min_inclusive and self.max_inclusive)

    def satisfies(self, version: VersionLike) -> bool:
        """Check whether a version falls inside this range."""
        version = parse_version(version)
        if self.min_version is not None:
            if self.min_inclusive:
                if version < self.min_version:
                    return False
            elif version <= self.min_version:
                return False
        if self.max_version is not None:
            if self.max_inclusive:
                if version > self.max_version:
                    return False
            elif version >= self.max_version:
                return False
        return True

    def intersect(self, other: 'VersionSpec') -> 'VersionSpec':
        """Return the range satisfied by both this range and `other`."""
        low, low_inc = self.min_version, self.min_inclusive
        if other.min_version is not None:
            if low is None or other.min_version > low:
                low, low_inc = other.min_version, other.min_inclusive
            elif other.min_version == low:
                low_inc = low_inc and other.min_inclusive

        high, high_inc = self.max_version, self.max_inclusive
        if other.max_version is not None:
            if high is None or other.max_version < high:
                high, high_inc = other.max_version, other.max_inclusive
            elif other.max_version == high:
                high_inc = high_inc and other.max_inclusive

        return VersionSpec(low, low_inc, high, high_inc,
                           original=' '.join(s for s in (self.original, other.original) if s))

    @classmethod
    def exact(cls, version: VersionLike) -> 'VersionSpec':
        version = parse_version(version)
        return cls(version, True, version, True, original=f"[{version}]")

    @classmethod
    def from_bounds(cls, required: Optional[str] = None,
                    minimum: Optional[str] = None,
                    maximum: Optional[str] = None) -> 'VersionSpec':
        """Build the three-part range used by find operations.

        required means exact equality; minimum and maximum are inclusive and
        may be combined.
        """
        spec = cls()
        if required:
            spec = spec.intersect(cls.exact(required))
        if minimum:
            spec = spec.intersect(cls(parse_version(minimum), True, original=f">={minimum}"))
        if maximum:
            spec = spec.intersect(cls(max_version=parse_version(maximum), max_inclusive=True,
                                      original=f"<={maximum}"))
        return spec

    @classmethod
    def parse(cls, text: Optional[str]) -> 'VersionSpec':
        """Parse a version range string.

        Raises:
            InvalidVersion: if the string is not a recognized range
        """
        raw = (text or '').strip()
        if raw in ('', '*'):
            return cls(original=raw)

        if raw[0] in '[(':
            return cls._parse_interval(raw)

        if raw[0] == '^':
            base = parse_version(raw[1:].strip())
            if base.major > 0 or len(base.release) == 1:
                upper = _bump(base, 0)
            elif base.minor > 0 or len(base.release) == 2:
                upper = _bump(base, 1)
            else:
                upper = _bump(base, 2)
            return cls(base, True, upper, False, original=raw)

        if raw[0] == '~':
            base = parse_version(raw[1:].strip())
            index = 0 if len(base.release) == 1 else 1
            return cls(base, True, _bump(base, index), False, original=raw)

        if raw[0] in '<>=':
            return cls._parse_comparators(raw)

        # Bare version: minimum, inclusive
        return cls(parse_version(raw), True, original=raw)

    @classmethod
    def _parse_interval(cls, raw: str) -> 'VersionSpec':
        match = INTERVAL_REGEX.match(raw)
        if not match:
            raise InvalidVersion(f"Invalid version range: '{raw}'")
        opening, low_text, comma, high_text, closing = match.groups()
        low_inclusive = opening == '['
        high_inclusive = closing == ']'

        if not comma:
            # [1.0] exact match; (1.0) is meaningless
            if not (low_inclusive and high_inclusive) or not low_text:
                raise InvalidVersion(f"Invalid version range: '{raw}'")
            version = parse_version(low_text)
            return cls(version, True, version, True, original=raw)

        low = parse_version(low_text) if low_text else None
        high = parse_version(high_text) if high_text else None
        if low is None and high is None:
            raise InvalidVersion(f"Invalid version range: '{raw}'")
        if low is not None and high is not None:
            if low > high or (low == high and not (low_inclusive and high_inclusive)):
                raise InvalidVersion(f"Empty version range: '{raw}'")
        return cls(low, low_inclusive, high, high_inclusive, original=raw)

    @classmethod
    def _parse_comparators(cls, raw: str) -> 'VersionSpec':
        matches = list(COMPARATOR_REGEX.finditer(raw))
        leftover = COMPARATOR_REGEX.sub('', raw).replace(',', '').strip()
        if not matches or leftover:
            raise InvalidVersion(f"Invalid version range: '{raw}'")

        spec = cls()
        for match in matches:
            op, text = match.group(1), match.group(2)
            version = parse_version(text)
            if op in ('=', '=='):
                part = cls(version, True, version, True)
            elif op == '>=':
                part = cls(version, True)
            elif op == '>':
                part = cls(version, False)
            elif op == '<=':
                part = cls(max_version=version, max_inclusive=True)
            else:
                part = cls(max_version=version, max_inclusive=False)
            spec = spec.intersect(part)
        return VersionSpec(spec.min_version, spec.min_inclusive,
                           spec.max_version, spec.max_inclusive, original=raw)

    def __str__(self):
        if self.original:
            return self.original
        if self.is_unbounded:
            return '*'
        if self.is_exact:
            return f"[{self.min_version}]"
        low = str(self.min_version) if self.min_version is not None else ''
        high = str(self.max_version) if self.max_version is not None else ''
        return (f"{'[' if self.min_inclusive else '('}{low},"
                f"{high}{']' if self.max_inclusive else ')'}")


def prefer_stable(items: List, allow_prerelease: bool = False,
                  key: Optional[Callable] = None) -> List:
    """Drop prerelease versions unless allowed.

    A list holding only prereleases is returned whole.

    Args:
        items: Versions, or objects carrying one
        allow_prerelease: Keep prereleases alongside stable versions
        key: Maps an item to its SemanticVersion (default: the item itself)
    """
    items = list(items)
    if allow_prerelease:
        return items
    key = key or (lambda item: item)
    stable = [item for item in items if not key(item).is_prerelease]
    return stable or items
