"""
Shared fixtures for dylib-bundler tests.

The fakes below model a small Mach-O world in memory: each binary has a list
of library references and rpath entries. The fake filesystem, inspector and
patcher all read and write that world, so copies carry their load commands
along and rewrites are visible to later inspections.
"""

import copy
from typing import Dict, List, Optional

import pytest

from dylib_bundler.cli_config import (
    BundleConfig,
    ComprehensiveConfig,
    PolicyConfig,
    reset_config,
)
from dylib_bundler.error_handling import DiscoveryError
from dylib_bundler.filesystem import FileSystem
from dylib_bundler.inspector import BaseInspector
from dylib_bundler.patcher import BasePatcher


class MachOWorld:
    """In-memory set of binaries and directories."""

    def __init__(self):
        self.binaries: Dict[str, Dict[str, List[str]]] = {}
        self.directories: set = set()

    def add_binary(
        self,
        path: str,
        references: Optional[List[str]] = None,
        rpaths: Optional[List[str]] = None,
    ) -> str:
        self.binaries[path] = {
            "references": list(references or []),
            "rpaths": list(rpaths or []),
            "id": [],
        }
        return path


class FakeFileSystem(FileSystem):
    def __init__(self, world: MachOWorld):
        super().__init__()
        self.world = world
        self.copies: List[tuple] = []
        self.fail_copy = False

    def exists(self, path: str) -> bool:
        return path in self.world.binaries or path.rstrip("/") in self.world.directories

    def real_path(self, path: str) -> str:
        return path

    def copy(self, source: str, destination: str) -> bool:
        if self.fail_copy or source not in self.world.binaries:
            return False
        self.world.binaries[destination] = copy.deepcopy(self.world.binaries[source])
        self.copies.append((source, destination))
        return True

    def make_writable(self, path: str) -> bool:
        return True

    def make_directories(self, path: str) -> bool:
        self.world.directories.add(path.rstrip("/"))
        return True

    def remove_recursive(self, path: str) -> bool:
        root = path.rstrip("/")
        self.world.directories.discard(root)
        for name in [b for b in self.world.binaries if b.startswith(root + "/")]:
            del self.world.binaries[name]
        return True


class FakeInspector(BaseInspector):
    def __init__(self, world: MachOWorld):
        self.world = world
        self.inspected: List[str] = []
        self.rpath_inspected: List[str] = []

    def inspect(self, path: str) -> List[str]:
        self.inspected.append(path)
        if path not in self.world.binaries:
            raise DiscoveryError(
                f"Cannot find file {path} to read its dependencies", path
            )
        return [
            f"{ref} (compatibility version 1.0.0, current version 1.0.0)"
            for ref in self.world.binaries[path]["references"]
        ]

    def inspect_rpaths(self, path: str) -> List[str]:
        self.rpath_inspected.append(path)
        if path not in self.world.binaries:
            return []
        return list(self.world.binaries[path]["rpaths"])


class FakePatcher(BasePatcher):
    def __init__(self, world: MachOWorld):
        self.world = world
        self.edits: List[tuple] = []
        self.fail = False

    def rewrite_reference(self, target: str, old: str, new: str) -> bool:
        if self.fail:
            return False
        self.edits.append(("reference", target, old, new))
        refs = self.world.binaries[target]["references"]
        self.world.binaries[target]["references"] = [
            new if ref == old else ref for ref in refs
        ]
        return True

    def rewrite_rpath(self, target: str, old: str, new: str) -> bool:
        if self.fail:
            return False
        self.edits.append(("rpath", target, old, new))
        rpaths = self.world.binaries[target]["rpaths"]
        self.world.binaries[target]["rpaths"] = [
            new if entry == old else entry for entry in rpaths
        ]
        return True

    def set_install_id(self, target: str, install_id: str) -> bool:
        if self.fail:
            return False
        self.edits.append(("id", target, None, install_id))
        self.world.binaries[target]["id"] = [install_id]
        return True

    def edits_on(self, target: str, kind: str) -> List[tuple]:
        return [(old, new) for k, t, old, new in self.edits if k == kind and t == target]


@pytest.fixture(autouse=True)
def clean_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def world():
    return MachOWorld()


@pytest.fixture
def filesystem(world):
    return FakeFileSystem(world)


@pytest.fixture
def inspector(world):
    return FakeInspector(world)


@pytest.fixture
def patcher(world):
    return FakePatcher(world)


@pytest.fixture
def make_config():
    def _make(files, **bundle_overrides):
        bundle = BundleConfig(
            files_to_fix=list(files),
            dest_dir="/out/libs/",
            inside_lib_path="@executable_path/../libs/",
            bundle_libs=True,
            create_dir=True,
        )
        for key, value in bundle_overrides.items():
            setattr(bundle, key, value)
        return ComprehensiveConfig(bundle=bundle, policy=PolicyConfig())

    return _make


@pytest.fixture
def otool_output():
    """Captured ``otool -l`` output trimmed to the interesting load commands."""
    return """app:
Load command 11
          cmd LC_LOAD_DYLINKER
      cmdsize 32
         name /usr/lib/dyld (offset 12)
Load command 12
          cmd LC_LOAD_DYLIB
      cmdsize 56
         name /opt/local/lib/libfoo.dylib (offset 24)
   time stamp 2 Thu Jan  1 01:00:02 1970
      current version 1.0.0
compatibility version 1.0.0
Load command 13
          cmd LC_LOAD_DYLIB
      cmdsize 56
         name @rpath/libbar.dylib (offset 24)
   time stamp 2 Thu Jan  1 01:00:02 1970
Load command 14
          cmd LC_LOAD_WEAK_DYLIB
      cmdsize 56
         name /usr/lib/libSystem.B.dylib (offset 24)
Load command 15
          cmd LC_RPATH
      cmdsize 32
         path /opt/local/lib (offset 12)
Load command 16
          cmd LC_RPATH
      cmdsize 32
         path @loader_path/../Frameworks (offset 12)
"""
