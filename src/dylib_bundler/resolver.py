"""
Closure resolver: walks the library dependency graph of the target binaries.

Starting from the files to fix, every direct library reference is inspected
and registered, then each newly registered library is located on disk and
inspected in turn until no new library turns up.
"""

from collections import deque
from typing import Callable, Iterable, List, Optional

from .context import ResolutionContext
from .dependency import Dependency, is_relocatable, split_reference
from .error_handling import (
    ConfigurationError,
    ErrorCategory,
    get_error_handler,
    log_parsing_warning,
    report_fatal,
)
from .filesystem import FileSystem
from .inspector import BaseInspector
from .policy import FRAMEWORK_MARKER
from .structured_logging import log_binary_inspected, log_rpaths_collected

# Receives a library file name, returns a directory to look in, or None to abort.
DirectoryPrompt = Callable[[str], Optional[str]]


def extract_reference(line: str) -> str:
    """Trim otool's ``(compatibility version ...)``/``(offset N)`` suffix."""
    line = line.strip()
    end = line.rfind(" (")
    if end != -1:
        line = line[:end]
    return line


class ClosureResolver:
    """Populates a ResolutionContext with the full dependency closure."""

    def __init__(
        self,
        context: ResolutionContext,
        inspector: BaseInspector,
        filesystem: Optional[FileSystem] = None,
        search_paths: Optional[Iterable[str]] = None,
        directory_prompt: Optional[DirectoryPrompt] = None,
    ):
        self.context = context
        self.inspector = inspector
        self.filesystem = filesystem or FileSystem()
        self.search_paths = [
            p if p.endswith("/") else p + "/" for p in (search_paths or [])
        ]
        self.directory_prompt = directory_prompt
        self.error_handler = get_error_handler()

    def resolve(self, targets: Iterable[str]) -> ResolutionContext:
        """Collect the dependency closure of every target binary."""
        worklist: deque = deque()
        for target in targets:
            worklist.extend(self.collect_dependencies(target))
        self.collect_sub_dependencies(worklist)
        return self.context

    def collect_rpaths_for(self, binary: str) -> List[str]:
        """Inspect ``binary``'s rpath entries once and cache them."""
        if not self.context.has_rpaths_for(binary):
            entries = self.inspector.inspect_rpaths(binary)
            self.context.record_rpaths(binary, entries)
            log_rpaths_collected(binary, entries)
        return self.context.rpaths_for(binary)

    def references_of(self, binary: str) -> List[str]:
        """Library references of ``binary`` minus grouped bundles (frameworks)."""
        references = []
        for line in self.inspector.inspect(binary):
            reference = extract_reference(line)
            if not reference:
                continue
            if FRAMEWORK_MARKER in reference:
                continue
            if not split_reference(reference)[1]:
                log_parsing_warning(
                    f"Library reference without a file name: {reference!r}",
                    "resolver",
                    "references_of",
                    file_path=binary,
                )
                continue
            references.append(reference)
        log_binary_inspected(binary, len(references))
        return references

    def collect_dependencies(self, binary: str) -> List[Dependency]:
        """
        Register the direct dependencies of ``binary``.

        Returns the global records that did not exist before this call.
        """
        new_records = []
        for reference in self.references_of(binary):
            if is_relocatable(reference):
                self.collect_rpaths_for(binary)
            record = self.context.add_dependency(reference, binary)
            if record is not None:
                new_records.append(record)
        self.context.mark_collected(binary)
        return new_records

    def collect_sub_dependencies(self, worklist: Optional[deque] = None) -> None:
        """Process queued records until no new dependency is discovered."""
        if worklist is None:
            worklist = deque(self.context.dependencies)

        while worklist:
            dep = worklist.popleft()
            path = self.locate(dep)
            self.collect_rpaths_for(path)
            if self.context.is_collected(path):
                continue
            worklist.extend(self.collect_dependencies(path))

    def locate(self, dep: Dependency) -> str:
        """Resolve a record to a concrete file path, caching the result."""
        if dep.resolved_path:
            return dep.resolved_path

        exists = self.filesystem.exists
        path = None

        if dep.is_relocatable:
            found = self.context.search_rpaths(dep.filename, exists)
            if found:
                path = self.filesystem.real_path(found)
            else:
                self.error_handler.warning(
                    ErrorCategory.DISCOVERY,
                    f"Can't get path for '{dep.original_path}'",
                    "resolver",
                    "locate",
                )
        elif dep.prefix and exists(dep.prefix + dep.filename):
            path = dep.prefix + dep.filename

        if path is None:
            path = self._search_configured_paths(dep)

        if path is None:
            if dep.is_relocatable or not dep.prefix:
                path = self._ask_operator(dep)
            else:
                # inspection reports the missing file
                path = dep.prefix + dep.filename

        dep.resolved_path = path
        return path

    def _search_configured_paths(self, dep: Dependency) -> Optional[str]:
        for search_path in self.search_paths:
            candidate = search_path + dep.filename
            if self.filesystem.exists(candidate):
                if dep.prefix:
                    self.error_handler.warning(
                        ErrorCategory.DISCOVERY,
                        f"Library {dep.filename} not found at {dep.prefix}, "
                        f"using {search_path}",
                        "resolver",
                        "_search_configured_paths",
                    )
                return self.filesystem.real_path(candidate)
        return None

    def _ask_operator(self, dep: Dependency) -> str:
        if self.directory_prompt is None:
            raise report_fatal(
                ConfigurationError(
                    f"Cannot locate library {dep.original_path}; "
                    "add a search path for it",
                    dep.original_path,
                ),
                "resolver",
                "_ask_operator",
            )

        while True:
            directory = self.directory_prompt(dep.filename)
            if directory is None:
                raise report_fatal(
                    ConfigurationError(
                        f"No location given for library {dep.filename}",
                        dep.original_path,
                    ),
                    "resolver",
                    "_ask_operator",
                )
            if not directory.endswith("/"):
                directory += "/"
            candidate = directory + dep.filename
            if self.filesystem.exists(candidate):
                self.search_paths.append(directory)
                return self.filesystem.real_path(candidate)
            self.error_handler.warning(
                ErrorCategory.DISCOVERY,
                f"{dep.filename} does not exist in {directory}",
                "resolver",
                "_ask_operator",
            )
