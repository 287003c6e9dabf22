"""
End-to-end bundling run.

Resolves the dependency closure of the files to fix, lists the libraries
found, copies them into the output directory, then rewrites library
references and rpaths in both the copies and the original files.
"""

import time
from typing import Optional

from .cli_config import ComprehensiveConfig
from .context import ResolutionContext
from .error_handling import (
    ConfigurationError,
    ErrorLevel,
    get_error_handler,
    report_fatal,
)
from .filesystem import FileSystem
from .inspector import BaseInspector, OtoolInspector
from .installer import BundleInstaller
from .patcher import BasePatcher, InstallNameToolPatcher
from .policy import BundlePolicy
from .reporting import BundleReporter, RunSummary
from .resolver import ClosureResolver, DirectoryPrompt
from .rewriter import ReferenceRewriter
from .structured_logging import clear_run_context, set_run_context


class DylibBundler:
    """Wires the resolver, installer and rewriter together for one run."""

    def __init__(
        self,
        config: ComprehensiveConfig,
        inspector: Optional[BaseInspector] = None,
        patcher: Optional[BasePatcher] = None,
        filesystem: Optional[FileSystem] = None,
        directory_prompt: Optional[DirectoryPrompt] = None,
        reporter: Optional[BundleReporter] = None,
    ):
        self.config = config
        self.filesystem = filesystem or FileSystem()
        self.inspector = inspector or OtoolInspector(
            config.tools.otool, self.filesystem
        )
        self.patcher = patcher or InstallNameToolPatcher(
            config.tools.install_name_tool
        )
        self.reporter = reporter or BundleReporter()

        self.context = ResolutionContext(BundlePolicy(config.policy))
        self.resolver = ClosureResolver(
            self.context,
            self.inspector,
            self.filesystem,
            search_paths=config.bundle.search_paths,
            directory_prompt=directory_prompt,
        )
        self.installer = BundleInstaller(config.bundle, self.patcher, self.filesystem)
        self.rewriter = ReferenceRewriter(
            self.context, self.resolver, self.patcher, config.bundle.inside_lib_path
        )
        self.summary = RunSummary()

    def run(self) -> RunSummary:
        bundle = self.config.bundle
        # each target is fixed once, in first-seen order
        targets = list(dict.fromkeys(bundle.files_to_fix))
        if not targets:
            raise report_fatal(
                ConfigurationError("No file to fix was given"), "bundler", "run"
            )

        set_run_context(
            run_id=f"bundle_{int(time.time())}",
            dest_dir=bundle.dest_dir,
            total_targets=len(targets),
        )
        error_handler = get_error_handler()
        warnings_before = error_handler.count(ErrorLevel.WARNING)
        try:
            self.reporter.step("Collecting dependencies")
            self.resolver.resolve(targets)

            self.summary.dependencies = len(self.context.dependencies)
            self.reporter.print_dependencies(self.context.dependencies)

            if bundle.bundle_libs:
                self.reporter.step(f"Checking output directory {bundle.dest_dir}")
                self.installer.prepare_output_directory()
                for dep in self.context.dependencies:
                    self._bundle_dependency(dep)

            for file_to_fix in targets:
                self.reporter.step(f"Fixing dependencies on {file_to_fix}")
                self._fix_file(file_to_fix, file_to_fix)
        finally:
            clear_run_context()

        self.summary.warnings = (
            error_handler.count(ErrorLevel.WARNING) - warnings_before
        )
        self.reporter.print_summary(self.summary)
        return self.summary

    def _bundle_dependency(self, dep) -> None:
        original = dep.source_path()
        if self.installer.install(dep):
            self.summary.files_copied += 1
        else:
            self.summary.copies_skipped += 1
        self.reporter.step(f"Fixing dependencies on {dep.install_path}")
        self._fix_file(original, dep.install_path)

    def _fix_file(self, original_file: str, file_to_fix: str) -> None:
        self.summary.references_rewritten += self.rewriter.fix_references(file_to_fix)
        self.summary.rpaths_rewritten += self.rewriter.fix_rpaths(
            original_file, file_to_fix
        )
        self.summary.files_fixed += 1


def run_bundle(config: ComprehensiveConfig, **kwargs) -> ResolutionContext:
    """Convenience function: run a bundle and return its resolution context."""
    bundler = DylibBundler(config, **kwargs)
    bundler.run()
    return bundler.context
