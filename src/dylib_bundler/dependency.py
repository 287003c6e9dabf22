from dataclasses import dataclass, replace
from typing import Optional

from .cli_config import RELOCATABLE_MARKERS


def is_relocatable(reference: str) -> bool:
    """True for references resolved at load time against the binary's rpaths."""
    return any(reference.startswith(marker) for marker in RELOCATABLE_MARKERS)


def split_reference(reference: str):
    """Split a load-command reference into (prefix, filename)."""
    slash = reference.rfind("/")
    if slash == -1:
        return "", reference
    return reference[: slash + 1], reference[slash + 1 :]


@dataclass
class Dependency:
    """One distinct library dependency discovered in the closure."""

    original_path: str
    prefix: str = ""
    filename: str = ""
    install_path: Optional[str] = None
    resolved_path: Optional[str] = None

    @classmethod
    def from_reference(cls, reference: str) -> "Dependency":
        reference = reference.strip()
        prefix, filename = split_reference(reference)
        if not filename:
            raise ValueError(f"Dependency reference has no file name: {reference!r}")
        return cls(original_path=reference, prefix=prefix, filename=filename)

    @property
    def is_relocatable(self) -> bool:
        return is_relocatable(self.prefix)

    def is_same_as(self, other: "Dependency") -> bool:
        """
        Two records describe the same library when their basenames match.

        Prefixes are not compared: libraries with one basename in two
        directories collapse into one record, and the merge keeps the more
        specific prefix.
        """
        return self.filename == other.filename

    def merge_from(self, other: "Dependency") -> None:
        """Adopt ``other``'s prefix if it is more specific than ours."""
        if _specificity(other.prefix) > _specificity(self.prefix):
            self.prefix = other.prefix

    def copy(self) -> "Dependency":
        return replace(self)

    def inner_path(self, inside_lib_path: str) -> str:
        """Reference a consuming binary should use to find the bundled copy."""
        return inside_lib_path + self.filename

    def source_path(self) -> str:
        """Best known on-disk location of the library."""
        return self.resolved_path or self.prefix + self.filename


def _specificity(prefix: str) -> int:
    if not prefix:
        return 0
    if is_relocatable(prefix):
        return 1
    return 2
