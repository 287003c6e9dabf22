"""
Resolution context: the dependency registry for a single bundling run.

Holds the global list of distinct dependencies, the per-binary dependency
index, the per-binary "dependencies collected" flags, and the rpath caches.
One instance lives exactly as long as one run.
"""

from typing import Callable, Dict, List, Optional

from .dependency import Dependency
from .policy import BundlePolicy
from .structured_logging import log_dependency_added, log_dependency_excluded


class ResolutionContext:
    """Registry of everything discovered while walking the dependency graph."""

    def __init__(self, policy: Optional[BundlePolicy] = None):
        self.policy = policy or BundlePolicy()
        self.dependencies: List[Dependency] = []
        self.deps_per_file: Dict[str, List[Dependency]] = {}
        self.deps_collected: Dict[str, bool] = {}
        # insertion-ordered set
        self.rpaths: Dict[str, None] = {}
        self.rpaths_per_file: Dict[str, List[str]] = {}

    # -- dependencies -----------------------------------------------------

    def add_dependency(self, reference: str, owner: str) -> Optional[Dependency]:
        """
        Register ``reference`` as a direct dependency of ``owner``.

        Returns the newly created global record, or None when the reference
        was excluded by the bundle policy or merged into an existing record.
        """
        candidate = Dependency.from_reference(reference)

        reason = self.policy.exclusion_reason(candidate.prefix)
        if reason is not None:
            log_dependency_excluded(candidate.original_path, owner, reason)
            return None

        in_file = self.deps_per_file.setdefault(owner, [])
        if not _merge_into(candidate, in_file):
            in_file.append(candidate.copy())

        merged = _merge_into(candidate, self.dependencies)
        log_dependency_added(candidate.original_path, owner, merged)
        if merged:
            return None

        record = candidate.copy()
        self.dependencies.append(record)
        return record

    def lookup_per_binary(self, binary: str) -> List[Dependency]:
        """Direct dependencies of ``binary`` in discovery order."""
        return list(self.deps_per_file.get(binary, []))

    def mark_collected(self, binary: str) -> None:
        self.deps_collected[binary] = True

    def is_collected(self, binary: str) -> bool:
        return self.deps_collected.get(binary, False)

    # -- rpaths -----------------------------------------------------------

    def has_rpaths_for(self, binary: str) -> bool:
        return binary in self.rpaths_per_file

    def record_rpaths(self, binary: str, entries: List[str]) -> None:
        recorded = self.rpaths_per_file.setdefault(binary, [])
        for entry in entries:
            self.rpaths.setdefault(entry, None)
            recorded.append(entry)

    def rpaths_for(self, binary: str) -> List[str]:
        return list(self.rpaths_per_file.get(binary, []))

    def search_rpaths(
        self, reference: str, exists: Callable[[str], bool]
    ) -> Optional[str]:
        """First ``<rpath>/<basename>`` that exists across all known rpaths."""
        suffix = reference[reference.rfind("/") + 1 :]
        for rpath in self.rpaths:
            candidate = rpath.rstrip("/") + "/" + suffix
            if exists(candidate):
                return candidate
        return None


def _merge_into(candidate: Dependency, records: List[Dependency]) -> bool:
    merged = False
    for existing in records:
        if candidate.is_same_as(existing):
            existing.merge_from(candidate)
            merged = True
    return merged
