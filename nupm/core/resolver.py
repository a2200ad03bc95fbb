"""
Dependency closure computation

The closure of a package is the ordered list of its transitive dependencies
that are not installed yet, innermost first: installing the list in order
never needs something that is not already there.

The walk is greedy. Each dependency entry takes its newest compatible
candidate and there is no backtracking when two entries want incompatible
versions of the same id.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from . import diagnostics as diag
from .diagnostics import Diagnostics
from .errors import ResolutionError
from .installed import InstalledPackageIndex
from .locator import PackageLocator
from .manifest import Dependency
from .reference import PackageReference
from .version import InvalidVersion

logger = logging.getLogger(__name__)

Key = Tuple[str, object]


@dataclass
class DependencyClosure:
    """Packages to install before a root package, in install order."""
    root: PackageReference
    packages: List[PackageReference] = field(default_factory=list)

    def __iter__(self) -> Iterator[PackageReference]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def __getitem__(self, index):
        return self.packages[index]

    def ids(self) -> List[str]:
        return [p.id for p in self.packages]

    def __contains__(self, package) -> bool:
        if isinstance(package, PackageReference):
            return any(p.key == package.key for p in self.packages)
        return any(p.id.lower() == str(package).lower() for p in self.packages)


def _entries(package: PackageReference) -> Iterator[Dependency]:
    for group in package.dependency_groups:
        for dependency in group.dependencies:
            yield dependency


class DependencyResolver:
    """Computes dependency closures against a locator and the install root."""

    def __init__(self, locator: PackageLocator,
                 installed: Optional[InstalledPackageIndex] = None,
                 diagnostics: Optional[Diagnostics] = None):
        self.locator = locator
        self.installed = installed
        self.diagnostics = diagnostics if diagnostics is not None else locator.diagnostics

    def _installed_keys(self) -> FrozenSet[Key]:
        if self.installed is None:
            return frozenset()
        return self.installed.snapshot()

    def _candidates(self, dependency: Dependency, required_by: PackageReference,
                    cache: Dict[Tuple[str, str], List[PackageReference]]) -> List[PackageReference]:
        cache_key = (dependency.id.lower(), dependency.version_spec)
        if cache_key in cache:
            return cache[cache_key]
        try:
            candidates = self.locator.candidates(dependency)
        except InvalidVersion as e:
            raise ResolutionError(dependency.id, dependency.version_spec,
                                  required_by=str(required_by), reason=str(e)) from e
        if not candidates:
            raise ResolutionError(dependency.id, dependency.version_spec,
                                  required_by=str(required_by),
                                  reason="no matching package in any source")
        cache[cache_key] = candidates
        return candidates

    def closure(self, root: PackageReference) -> DependencyClosure:
        """Compute the not-yet-installed dependencies of root.

        Args:
            root: Package whose dependencies are resolved (not itself included)

        Returns:
            DependencyClosure, innermost dependency first

        Raises:
            ResolutionError: If a dependency has no candidate or an invalid range
        """
        # Installed state is captured once for the whole computation
        installed = self._installed_keys()
        result = DependencyClosure(root=root)
        added: Set[Key] = set()
        chosen_versions: Dict[str, str] = {}
        cache: Dict[Tuple[str, str], List[PackageReference]] = {}

        # Each frame holds a package and the iterator over its pending entries;
        # the packages on the stack form the active resolution path.
        stack = [(root, _entries(root))]
        active = [root.key]

        while stack:
            package, entries = stack[-1]
            dependency = next(entries, None)

            if dependency is None:
                stack.pop()
                active.pop()
                if stack and package.key not in added:
                    added.add(package.key)
                    result.packages.append(package)
                    logger.debug(f"Closure += {package}")
                continue

            candidates = self._candidates(dependency, package, cache)

            installed_match = next((c for c in candidates if c.key in installed), None)
            if installed_match is not None:
                logger.debug(f"{dependency} satisfied by installed {installed_match}")
                continue

            chosen = candidates[0]
            if chosen.key in added:
                continue
            if chosen.key in active:
                self.diagnostics.warning(
                    diag.DEPENDENCY_CYCLE,
                    f"Dependency cycle: {package} requires {chosen}, which is already "
                    f"being resolved", chosen.id)
                continue

            previous = chosen_versions.get(chosen.id.lower())
            if previous is not None and previous != chosen.version:
                logger.debug(f"{chosen.id}: {chosen.version} selected for {package} "
                             f"while {previous} was selected earlier")
            chosen_versions[chosen.id.lower()] = chosen.version

            stack.append((chosen, _entries(chosen)))
            active.append(chosen.key)

        logger.debug(f"Closure of {root}: {[str(p) for p in result]}")
        return result
