"""
Bundle installer: prepares the output directory and copies foreign
libraries into it.
"""

from typing import Optional

from .cli_config import BundleConfig
from .dependency import Dependency
from .error_handling import ConfigurationError, MutationError, report_fatal
from .filesystem import FileSystem
from .patcher import BasePatcher
from .structured_logging import get_installer_logger, log_file_copied


class BundleInstaller:
    """Copies each distinct dependency to ``<dest_dir>/<filename>``."""

    def __init__(
        self,
        config: BundleConfig,
        patcher: BasePatcher,
        filesystem: Optional[FileSystem] = None,
    ):
        self.config = config
        self.patcher = patcher
        self.filesystem = filesystem or FileSystem()
        self.logger = get_installer_logger()

    def prepare_output_directory(self) -> None:
        """
        Make sure the destination directory is ready before anything is copied.

        An existing directory is erased when overwriting is allowed and reused
        when creating is allowed. A missing directory is created only when
        creating is allowed.
        """
        dest = self.config.dest_dir
        dest_exists = self.filesystem.exists(dest)

        if dest_exists and self.config.overwrite_dir:
            self.logger.info("erasing_output_directory", dest_dir=dest)
            if not self.filesystem.remove_recursive(dest):
                raise report_fatal(
                    MutationError(
                        "An error occurred while attempting to overwrite dest folder",
                        dest,
                    ),
                    "installer",
                    "prepare_output_directory",
                )
            dest_exists = False

        if dest_exists:
            if not self.config.create_dir:
                raise report_fatal(
                    ConfigurationError(
                        f"Dest folder {dest} already exists. Pass the flag to "
                        "overwrite it or to allow writing into it.",
                        dest,
                    ),
                    "installer",
                    "prepare_output_directory",
                )
            return

        if not self.config.create_dir:
            raise report_fatal(
                ConfigurationError(
                    f"Dest folder {dest} does not exist. Create it or pass the "
                    "appropriate flag for automatic dest dir creation.",
                    dest,
                ),
                "installer",
                "prepare_output_directory",
            )

        self.logger.info("creating_output_directory", dest_dir=dest)
        if not self.filesystem.make_directories(dest):
            raise report_fatal(
                MutationError("An error occurred while creating dest folder", dest),
                "installer",
                "prepare_output_directory",
            )

    def install_path_for(self, dep: Dependency) -> str:
        return self.config.dest_dir + dep.filename

    def install(self, dep: Dependency) -> bool:
        """
        Copy ``dep`` into the bundle and set the copy's install id.

        Returns False when a file was already present at the install path
        and the copy was skipped.
        """
        install_path = self.install_path_for(dep)
        dep.install_path = install_path
        source = dep.source_path()

        if self.filesystem.exists(install_path):
            log_file_copied(source, install_path, skipped=True)
            copied = False
        else:
            if not self.filesystem.copy(source, install_path):
                raise report_fatal(
                    MutationError(
                        f"An error occurred while copying {source} to {install_path}",
                        source,
                    ),
                    "installer",
                    "install",
                )
            if not self.filesystem.make_writable(install_path):
                raise report_fatal(
                    MutationError(
                        f"Could not make {install_path} writable", install_path
                    ),
                    "installer",
                    "install",
                )
            log_file_copied(source, install_path, skipped=False)
            copied = True

        inner_path = dep.inner_path(self.config.inside_lib_path)
        if not self.patcher.set_install_id(install_path, inner_path):
            raise report_fatal(
                MutationError(
                    f"An error occurred while changing the id of {install_path}",
                    install_path,
                ),
                "installer",
                "install",
            )
        return copied
