"""
Core functionality tests for dylib-bundler.
Tests dependency records, the bundle policy, the registry and otool parsing.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from dylib_bundler.cli_config import PolicyConfig
from dylib_bundler.context import ResolutionContext
from dylib_bundler.dependency import Dependency, is_relocatable, split_reference
from dylib_bundler.error_handling import (
    ConfigurationError,
    DiscoveryError,
    ErrorCategory,
    ErrorHandler,
    ErrorLevel,
)
from dylib_bundler.inspector import OtoolInspector, parse_dylib_references, parse_rpaths
from dylib_bundler.patcher import InstallNameToolPatcher
from dylib_bundler.policy import BundlePolicy
from dylib_bundler.resolver import extract_reference


class TestDependency:
    """Test dependency record construction and matching."""

    def test_split_absolute_reference(self):
        assert split_reference("/opt/local/lib/libfoo.dylib") == (
            "/opt/local/lib/",
            "libfoo.dylib",
        )

    def test_split_bare_reference(self):
        assert split_reference("libfoo.dylib") == ("", "libfoo.dylib")

    def test_relocatable_markers(self):
        assert is_relocatable("@rpath/libfoo.dylib")
        assert is_relocatable("@loader_path/../lib/libfoo.dylib")
        assert not is_relocatable("@executable_path/libfoo.dylib")
        assert not is_relocatable("/usr/lib/libfoo.dylib")

    def test_empty_filename_rejected(self):
        with pytest.raises(ValueError):
            Dependency.from_reference("/opt/local/lib/")

    def test_same_filename_is_same_dependency(self):
        bare = Dependency.from_reference("libfoo.dylib")
        full = Dependency.from_reference("/opt/local/lib/libfoo.dylib")
        assert bare.is_same_as(full)
        assert full.is_same_as(bare)

    def test_filename_match_is_case_sensitive(self):
        a = Dependency.from_reference("/opt/lib/libFoo.dylib")
        b = Dependency.from_reference("/opt/lib/libfoo.dylib")
        assert not a.is_same_as(b)

    def test_merge_takes_more_specific_prefix(self):
        bare = Dependency.from_reference("libfoo.dylib")
        bare.merge_from(Dependency.from_reference("/opt/local/lib/libfoo.dylib"))
        assert bare.prefix == "/opt/local/lib/"
        assert bare.original_path == "libfoo.dylib"

    def test_merge_prefers_absolute_over_relocatable(self):
        rpath_dep = Dependency.from_reference("@rpath/libfoo.dylib")
        rpath_dep.merge_from(Dependency.from_reference("/opt/local/lib/libfoo.dylib"))
        assert rpath_dep.prefix == "/opt/local/lib/"

    def test_merge_keeps_existing_absolute_prefix(self):
        full = Dependency.from_reference("/opt/local/lib/libfoo.dylib")
        full.merge_from(Dependency.from_reference("libfoo.dylib"))
        assert full.prefix == "/opt/local/lib/"

    def test_inner_path(self):
        dep = Dependency.from_reference("/opt/local/lib/libfoo.dylib")
        assert dep.inner_path("@executable_path/../libs/") == (
            "@executable_path/../libs/libfoo.dylib"
        )


class TestBundlePolicy:
    """Test which prefixes are bundled."""

    def setup_method(self):
        self.policy = BundlePolicy(PolicyConfig())

    def test_system_prefixes_excluded(self):
        assert not self.policy.is_prefix_bundled("/usr/lib/")
        assert not self.policy.is_prefix_bundled("/System/Library/Frameworks/")

    def test_framework_excluded(self):
        assert not self.policy.is_prefix_bundled("/opt/Qt/QtCore.framework/Versions/5/")

    def test_executable_path_excluded(self):
        assert not self.policy.is_prefix_bundled("@executable_path/")

    def test_foreign_prefixes_bundled(self):
        assert self.policy.is_prefix_bundled("/opt/local/lib/")
        assert self.policy.is_prefix_bundled("/usr/local/lib/")
        assert self.policy.is_prefix_bundled("@rpath/")
        assert self.policy.is_prefix_bundled("")

    def test_ignored_prefix(self):
        policy = BundlePolicy(PolicyConfig(ignored_prefixes=["/usr/local/lib/"]))
        assert not policy.is_prefix_bundled("/usr/local/lib/")
        assert policy.is_prefix_bundled("/opt/local/lib/")

    def test_pattern_rule(self):
        policy = BundlePolicy(PolicyConfig(ignored_prefixes=["/opt/*/vendor/"]))
        assert not policy.is_prefix_bundled("/opt/acme/vendor/")

    def test_always_bundle_overrides_system(self):
        policy = BundlePolicy(
            PolicyConfig(always_bundle_prefixes=["/usr/lib/custom/"])
        )
        assert policy.is_prefix_bundled("/usr/lib/custom/")
        assert not policy.is_prefix_bundled("/usr/lib/")

    def test_exclusion_reason_names_matching_rule(self):
        policy = BundlePolicy(PolicyConfig(ignored_prefixes=["/usr/local/lib/"]))
        assert policy.exclusion_reason("/usr/lib/") == "system"
        assert policy.exclusion_reason("/usr/local/lib/") == "ignored"
        marker_reason = policy.exclusion_reason("@executable_path/../libs/")
        assert marker_reason == "excluded_marker"
        assert policy.exclusion_reason("/opt/Qt/QtGui.framework/") == "framework"
        assert policy.exclusion_reason("/opt/local/lib/") is None


class TestResolutionContext:
    """Test registry deduplication and policy filtering."""

    def setup_method(self):
        self.context = ResolutionContext()

    def test_add_new_dependency(self):
        record = self.context.add_dependency("/opt/local/lib/libfoo.dylib", "app")
        assert record is not None
        assert self.context.dependencies == [record]
        assert [d.filename for d in self.context.lookup_per_binary("app")] == [
            "libfoo.dylib"
        ]

    def test_merge_idempotence(self):
        references = [
            "/opt/local/lib/libfoo.dylib",
            "libfoo.dylib",
            "@rpath/libfoo.dylib",
            "/opt/local/lib/libfoo.dylib",
        ]
        for reference in references:
            self.context.add_dependency(reference, "app")
            self.context.add_dependency(reference, "plugin")

        assert len(self.context.dependencies) == 1
        assert len(self.context.lookup_per_binary("app")) == 1
        assert len(self.context.lookup_per_binary("plugin")) == 1
        assert self.context.dependencies[0].prefix == "/opt/local/lib/"

    def test_per_binary_keeps_its_own_reference_string(self):
        self.context.add_dependency("/opt/local/lib/libbar.dylib", "app")
        self.context.add_dependency("@rpath/libbar.dylib", "libfoo.dylib")

        assert self.context.lookup_per_binary("app")[0].original_path == (
            "/opt/local/lib/libbar.dylib"
        )
        assert self.context.lookup_per_binary("libfoo.dylib")[0].original_path == (
            "@rpath/libbar.dylib"
        )

    def test_excluded_dependency_never_added(self):
        self.context.add_dependency("/opt/local/lib/libz.dylib", "plugin")
        result = self.context.add_dependency("/usr/lib/libz.dylib", "app")

        assert result is None
        assert self.context.lookup_per_binary("app") == []
        assert len(self.context.dependencies) == 1
        assert self.context.dependencies[0].prefix == "/opt/local/lib/"

    def test_merged_dependency_returns_none(self):
        self.context.add_dependency("/opt/local/lib/libfoo.dylib", "app")
        assert self.context.add_dependency("libfoo.dylib", "other") is None

    def test_same_basename_different_directories_conflate(self):
        # Known limitation: records are keyed by basename only.
        self.context.add_dependency("/opt/a/libdup.dylib", "app")
        self.context.add_dependency("/opt/b/libdup.dylib", "app")
        assert len(self.context.dependencies) == 1
        assert self.context.dependencies[0].prefix == "/opt/a/"

    def test_rpaths_recorded_in_order(self):
        self.context.record_rpaths("app", ["/b", "/a", "/b"])
        self.context.record_rpaths("lib", ["/a"])
        assert self.context.rpaths_for("app") == ["/b", "/a", "/b"]
        assert list(self.context.rpaths) == ["/b", "/a"]
        assert self.context.has_rpaths_for("lib")
        assert not self.context.has_rpaths_for("missing")

    def test_search_rpaths(self):
        self.context.record_rpaths("app", ["/opt/x", "/opt/y/"])
        found = self.context.search_rpaths(
            "@rpath/libbar.dylib", lambda p: p == "/opt/y/libbar.dylib"
        )
        assert found == "/opt/y/libbar.dylib"
        assert self.context.search_rpaths("@rpath/libnone.dylib", lambda p: False) is None

    def test_collected_flags(self):
        assert not self.context.is_collected("app")
        self.context.mark_collected("app")
        assert self.context.is_collected("app")


class TestOtoolParsing:
    """Test scraping of ``otool -l`` output."""

    def test_parse_dylib_references(self, otool_output):
        lines = parse_dylib_references(otool_output, "app")
        assert [extract_reference(line) for line in lines] == [
            "/opt/local/lib/libfoo.dylib",
            "@rpath/libbar.dylib",
            "/usr/lib/libSystem.B.dylib",
        ]

    def test_dylinker_is_not_a_library(self, otool_output):
        lines = parse_dylib_references(otool_output)
        assert not any("dyld " in line for line in lines)

    def test_parse_rpaths(self, otool_output):
        assert parse_rpaths(otool_output, "app") == [
            "/opt/local/lib",
            "@loader_path/../Frameworks",
        ]

    def test_malformed_rpath_is_skipped(self):
        output = """Load command 1
          cmd LC_RPATH
      cmdsize 32
         garbage
Load command 2
          cmd LC_RPATH
      cmdsize 32
         path /good (offset 12)
"""
        with patch("dylib_bundler.inspector.log_parsing_warning") as warn:
            assert parse_rpaths(output) == ["/good"]
            warn.assert_called_once()

    def test_missing_name_is_skipped(self):
        output = """          cmd LC_LOAD_DYLIB
      cmdsize 56
          cmd LC_LOAD_DYLIB
      cmdsize 56
         name /opt/lib/libok.dylib (offset 24)
"""
        with patch("dylib_bundler.inspector.log_parsing_warning") as warn:
            lines = parse_dylib_references(output)
        assert [extract_reference(line) for line in lines] == ["/opt/lib/libok.dylib"]
        assert warn.called

    def test_extract_reference(self):
        assert extract_reference(
            "\t/opt/lib/libfoo.dylib (compatibility version 1.0.0, current version 1.2.0)"
        ) == "/opt/lib/libfoo.dylib"
        assert extract_reference("libfoo.dylib") == "libfoo.dylib"


class TestOtoolInspector:
    """Test the subprocess-backed inspector."""

    @patch("dylib_bundler.inspector.subprocess.run")
    def test_inspect_runs_otool(self, mock_run, otool_output):
        mock_run.return_value = MagicMock(stdout=otool_output, stderr="", returncode=0)
        lines = OtoolInspector().inspect("/tmp/app")

        assert mock_run.call_args[0][0] == ["otool", "-l", "/tmp/app"]
        assert len(lines) == 3

    @patch("dylib_bundler.inspector.subprocess.run")
    def test_inspect_missing_file_is_fatal(self, mock_run):
        mock_run.return_value = MagicMock(
            stdout="",
            stderr="error: /tmp/missing: No such file or directory",
            returncode=1,
        )
        with pytest.raises(DiscoveryError):
            OtoolInspector().inspect("/tmp/missing")

    @patch("dylib_bundler.inspector.subprocess.run", side_effect=FileNotFoundError)
    def test_missing_tool_is_configuration_error(self, _):
        with pytest.raises(ConfigurationError):
            OtoolInspector("no-such-otool").inspect("/tmp/app")

    def test_rpaths_of_missing_file_is_empty(self, tmp_path):
        with patch("dylib_bundler.inspector.subprocess.run") as mock_run:
            assert OtoolInspector().inspect_rpaths(str(tmp_path / "missing")) == []
            mock_run.assert_not_called()

    @patch("dylib_bundler.inspector.subprocess.run")
    def test_inspect_rpaths(self, mock_run, otool_output, tmp_path):
        binary = tmp_path / "app"
        binary.write_bytes(b"\xcf\xfa\xed\xfe")
        mock_run.return_value = MagicMock(stdout=otool_output, stderr="", returncode=0)
        assert OtoolInspector().inspect_rpaths(str(binary)) == [
            "/opt/local/lib",
            "@loader_path/../Frameworks",
        ]

    @patch("dylib_bundler.inspector.subprocess.run")
    def test_rpaths_existence_checked_through_filesystem(
        self, mock_run, otool_output, world, filesystem
    ):
        world.add_binary("/virtual/app", [])
        mock_run.return_value = MagicMock(stdout=otool_output, stderr="", returncode=0)
        inspector = OtoolInspector(filesystem=filesystem)

        assert inspector.inspect_rpaths("/virtual/app") == [
            "/opt/local/lib",
            "@loader_path/../Frameworks",
        ]
        assert inspector.inspect_rpaths("/virtual/missing") == []
        assert mock_run.call_count == 1


class TestInstallNameToolPatcher:
    """Test the subprocess-backed patcher."""

    @patch("dylib_bundler.patcher.subprocess.run")
    def test_rewrite_reference(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")
        assert InstallNameToolPatcher().rewrite_reference("app", "/old", "@new")
        assert mock_run.call_args[0][0] == [
            "install_name_tool",
            "-change",
            "/old",
            "@new",
            "app",
        ]

    @patch("dylib_bundler.patcher.subprocess.run")
    def test_rewrite_rpath_and_id(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")
        patcher = InstallNameToolPatcher()
        assert patcher.rewrite_rpath("lib", "/opt/lib", "@executable_path/../libs/")
        assert patcher.set_install_id("lib", "@executable_path/../libs/lib")
        commands = [c[0][0] for c in mock_run.call_args_list]
        assert commands[0][1] == "-rpath"
        assert commands[1][1] == "-id"

    @patch("dylib_bundler.patcher.subprocess.run")
    def test_failure_reported_as_false(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 1, "", "boom")
        assert not InstallNameToolPatcher().rewrite_reference("app", "/old", "@new")


class TestErrorHandler:
    """Test error handler statistics."""

    def test_stats_per_category_and_level(self):
        handler = ErrorHandler(logger_name="test_dylib_bundler")
        handler.warning(ErrorCategory.PARSING, "odd line", "inspector", "parse")
        handler.warning(ErrorCategory.DISCOVERY, "no rpath", "resolver", "locate")
        handler.error(ErrorCategory.MUTATION, "failed", "patcher", "run")

        assert handler.count(ErrorLevel.WARNING) == 2
        assert handler.count(ErrorLevel.ERROR) == 1
        assert handler.get_error_stats() == {
            "PARSING_WARNING": 1,
            "DISCOVERY_WARNING": 1,
            "MUTATION_ERROR": 1,
        }

    def test_diagnostic_render_includes_details(self):
        handler = ErrorHandler(logger_name="test_dylib_bundler")
        diagnostic = handler.warning(
            ErrorCategory.PARSING,
            "odd line",
            "inspector",
            "parse",
            details={"file_path": "app"},
        )
        assert diagnostic.render() == (
            "[PARSING] odd line (inspector.parse) | file_path=app"
        )
