"""
Reference rewriter: points a binary's library references and rpath
entries at the bundled copies.
"""

from .context import ResolutionContext
from .error_handling import MutationError, report_fatal
from .patcher import BasePatcher
from .resolver import ClosureResolver
from .structured_logging import log_reference_rewritten


class ReferenceRewriter:
    """Applies reference and rpath edits through a patcher."""

    def __init__(
        self,
        context: ResolutionContext,
        resolver: ClosureResolver,
        patcher: BasePatcher,
        inside_lib_path: str,
    ):
        self.context = context
        self.resolver = resolver
        self.patcher = patcher
        self.inside_lib_path = inside_lib_path

    def fix_references(self, file_to_fix: str) -> int:
        """Rewrite every bundled library reference in ``file_to_fix``."""
        if not self.context.is_collected(file_to_fix):
            self.resolver.collect_dependencies(file_to_fix)

        count = 0
        for dep in self.context.lookup_per_binary(file_to_fix):
            new_reference = dep.inner_path(self.inside_lib_path)
            if not self.patcher.rewrite_reference(
                file_to_fix, dep.original_path, new_reference
            ):
                raise report_fatal(
                    MutationError(
                        "An error occurred while trying to fix dependencies "
                        f"of {file_to_fix}",
                        file_to_fix,
                    ),
                    "rewriter",
                    "fix_references",
                )
            log_reference_rewritten(
                file_to_fix, dep.original_path, new_reference, "reference"
            )
            count += 1
        return count

    def fix_rpaths(self, original_file: str, file_to_fix: str) -> int:
        """
        Replay the rpaths recorded for ``original_file`` onto ``file_to_fix``.

        For a bundled copy ``original_file`` is the library's location before
        copying; the copy itself is never inspected for rpaths.
        """
        count = 0
        for rpath in self.context.rpaths_for(original_file):
            if not self.patcher.rewrite_rpath(file_to_fix, rpath, self.inside_lib_path):
                raise report_fatal(
                    MutationError(
                        "An error occurred while trying to fix rpaths "
                        f"of {file_to_fix}",
                        file_to_fix,
                    ),
                    "rewriter",
                    "fix_rpaths",
                )
            log_reference_rewritten(file_to_fix, rpath, self.inside_lib_path, "rpath")
            count += 1
        return count
