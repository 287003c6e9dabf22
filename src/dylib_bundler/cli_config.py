"""
Configuration management for dylib-bundler.

Settings come from a config file, then environment variables, then CLI
flags. Each layer overrides the previous one.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

RELOCATABLE_MARKERS = ("@rpath", "@loader_path")


@dataclass
class BundleConfig:
    """What to fix and where the bundle goes."""

    files_to_fix: List[str] = field(default_factory=list)
    dest_dir: str = "./libs/"
    inside_lib_path: str = "@executable_path/../libs/"
    bundle_libs: bool = True
    overwrite_dir: bool = False
    create_dir: bool = False
    search_paths: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.dest_dir = _with_trailing_slash(self.dest_dir)
        self.inside_lib_path = _with_trailing_slash(self.inside_lib_path)


@dataclass
class PolicyConfig:
    """Which library prefixes are left alone and which are always bundled."""

    system_prefixes: List[str] = field(
        default_factory=lambda: ["/usr/lib/", "/System/Library/"]
    )
    ignored_prefixes: List[str] = field(default_factory=list)
    always_bundle_prefixes: List[str] = field(default_factory=list)
    excluded_markers: List[str] = field(
        default_factory=lambda: ["@executable_path"]
    )


@dataclass
class ToolConfig:
    """External tools used to read and edit Mach-O load commands."""

    otool: str = "otool"
    install_name_tool: str = "install_name_tool"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    enable_json: bool = True


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    bundle: BundleConfig = field(default_factory=BundleConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _with_trailing_slash(path: str) -> str:
    if path and not path.endswith("/"):
        return path + "/"
    return path


# Global configuration instance
_global_config: Optional[ComprehensiveConfig] = None


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if not config.bundle.dest_dir:
        errors.append("bundle.dest_dir must not be empty")
    if not config.bundle.inside_lib_path:
        errors.append("bundle.inside_lib_path must not be empty")

    for prefix in config.policy.always_bundle_prefixes:
        if prefix in config.policy.ignored_prefixes:
            errors.append(
                f"policy prefix {prefix!r} is both ignored and always bundled"
            )

    if not config.tools.otool:
        errors.append("tools.otool must not be empty")
    if not config.tools.install_name_tool:
        errors.append("tools.install_name_tool must not be empty")

    if config.logging.log_level.upper() not in (
        "DEBUG",
        "INFO",
        "WARNING",
        "ERROR",
        "CRITICAL",
    ):
        errors.append(f"logging.log_level is invalid: {config.logging.log_level}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(
            f"⚠️  Error loading config from {config_path}: {e}", style="yellow"
        )

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".dylib-bundler.json",
        Path.cwd() / ".dylib-bundler.yaml",
        Path.cwd() / ".dylib-bundler.yml",
        Path.home() / ".config" / "dylib-bundler" / "config.json",
        Path.home() / ".config" / "dylib-bundler" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Load environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    def get_env_list(key: str) -> List[str]:
        value = os.environ.get(key, "")
        return [item for item in value.split(os.pathsep) if item]

    if dest_dir := os.environ.get("DYLIB_BUNDLER_DEST_DIR"):
        config.bundle.dest_dir = _with_trailing_slash(dest_dir)
    if inside_path := os.environ.get("DYLIB_BUNDLER_INSTALL_PATH"):
        config.bundle.inside_lib_path = _with_trailing_slash(inside_path)

    config.bundle.overwrite_dir = get_env_bool(
        "DYLIB_BUNDLER_OVERWRITE_DIR", config.bundle.overwrite_dir
    )
    config.bundle.create_dir = get_env_bool(
        "DYLIB_BUNDLER_CREATE_DIR", config.bundle.create_dir
    )

    config.bundle.search_paths.extend(get_env_list("DYLIB_BUNDLER_SEARCH_PATHS"))
    config.policy.ignored_prefixes.extend(get_env_list("DYLIB_BUNDLER_IGNORE"))

    if otool := os.environ.get("DYLIB_BUNDLER_OTOOL"):
        config.tools.otool = otool
    if install_name_tool := os.environ.get("DYLIB_BUNDLER_INSTALL_NAME_TOOL"):
        config.tools.install_name_tool = install_name_tool

    if log_level := os.environ.get("DYLIB_BUNDLER_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def load_config(config_path: Optional[Path] = None) -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None and config_path is None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = config_path or find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if file_config:
            for section_name in ("bundle", "policy", "tools", "logging"):
                if section_name in file_config:
                    apply_config_section(
                        getattr(config, section_name),
                        file_config[section_name],
                        section_name,
                    )

    config.bundle.dest_dir = _with_trailing_slash(config.bundle.dest_dir)
    config.bundle.inside_lib_path = _with_trailing_slash(config.bundle.inside_lib_path)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")

    _global_config = config
    return config


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate sample configuration."""
    return json.dumps(ComprehensiveConfig().to_dict(), indent=2)
