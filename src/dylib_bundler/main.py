import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .bundler import DylibBundler
from .cli_config import (
    create_sample_config,
    load_config,
    load_config_file,
    reset_config,
    validate_config_values,
)
from .error_handling import (
    BundlerError,
    ConfigurationError,
    report_fatal,
    setup_error_handling,
)
from .reporting import BundleReporter
from .structured_logging import configure_logging

console = Console()
error_console = Console(stderr=True)


def prompt_for_directory(filename: str) -> Optional[str]:
    """Ask the operator where ``filename`` lives. Returns None on 'quit'."""
    error_console.print(
        f"\n⚠️  Dependency {filename} of your app is not installed in a "
        "known location.",
        style="yellow",
    )
    answer = click.prompt(
        "Please specify the directory where this library is located "
        "(or enter 'quit' to abort)",
        err=True,
    ).strip()
    if answer == "quit":
        return None
    return str(Path(answer).expanduser())


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 dylib-bundler: bundle the foreign libraries a Mach-O binary needs.

    Copies every non-system library into one directory and rewrites the
    binaries so they load the bundled copies.
    """
    if version:
        console.print(f"dylib-bundler version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option(
    "-x",
    "--fix-file",
    "fix_files",
    multiple=True,
    type=click.Path(dir_okay=False),
    help="File to fix (executable or app plug-in); may be repeated",
)
@click.option(
    "-d",
    "--dest-dir",
    type=click.Path(file_okay=False),
    help="Directory to send bundled libraries (default: ./libs/)",
)
@click.option(
    "-p",
    "--install-path",
    help="Inner path of the bundled libraries (default: @executable_path/../libs/)",
)
@click.option(
    "-b",
    "--bundle-deps/--no-bundle-deps",
    default=None,
    help="Copy the dependencies into the destination directory",
)
@click.option(
    "-od",
    "--overwrite-dir",
    is_flag=True,
    help="Erase the output directory if it exists (implies --create-dir)",
)
@click.option(
    "-cd",
    "--create-dir",
    is_flag=True,
    help="Create the output directory if needed, or write into an existing one",
)
@click.option(
    "-s",
    "--search-path",
    "search_paths",
    multiple=True,
    help="Directory to search for libraries with an unknown location",
)
@click.option(
    "-i",
    "--ignore",
    "ignored",
    multiple=True,
    help="Prefix of libraries to leave alone (not bundled)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file to load instead of the default locations",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Structured log level",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-critical output")
def bundle(
    fix_files: Tuple[str, ...],
    dest_dir: Optional[str],
    install_path: Optional[str],
    bundle_deps: Optional[bool],
    overwrite_dir: bool,
    create_dir: bool,
    search_paths: Tuple[str, ...],
    ignored: Tuple[str, ...],
    config_file: Optional[str],
    log_level: Optional[str],
    quiet: bool,
) -> None:
    """
    Bundle the dependencies of one or more binaries.

    Examples:

      dylib-bundler bundle -od -b -x ./App.app/Contents/MacOS/app -d ./App.app/Contents/libs/

      dylib-bundler bundle -x ./app -cd -s /opt/local/lib -i /usr/local/lib/
    """
    try:
        reset_config()
        config = load_config(Path(config_file) if config_file else None)

        if fix_files:
            config.bundle.files_to_fix = list(fix_files)
        if dest_dir:
            config.bundle.dest_dir = dest_dir if dest_dir.endswith("/") else dest_dir + "/"
        if install_path:
            config.bundle.inside_lib_path = (
                install_path if install_path.endswith("/") else install_path + "/"
            )
        if bundle_deps is not None:
            config.bundle.bundle_libs = bundle_deps
        if overwrite_dir:
            config.bundle.overwrite_dir = True
            config.bundle.create_dir = True
        if create_dir:
            config.bundle.create_dir = True
        config.bundle.search_paths.extend(search_paths)
        config.policy.ignored_prefixes.extend(
            p if p.endswith("/") else p + "/" for p in ignored
        )
        if log_level:
            config.logging.log_level = log_level.upper()

        configure_logging(config.logging.log_level, config.logging.enable_json)
        setup_error_handling(
            getattr(logging, config.logging.log_level.upper(), logging.WARNING)
        )

        if not config.bundle.files_to_fix:
            raise report_fatal(
                ConfigurationError("At least one file to fix (-x) is required"),
                "main",
                "bundle",
            )

        if not quiet:
            console.print(
                Panel(
                    f"📦 [bold blue]dylib-bundler[/bold blue] v{__version__}",
                    border_style="blue",
                )
            )

        bundler = DylibBundler(
            config,
            directory_prompt=prompt_for_directory,
            reporter=BundleReporter(console, quiet=quiet),
        )
        bundler.run()

    except BundlerError as e:
        error_console.print(f"\n❌ Error: {e.message}", style="red")
        sys.exit(1)
    except KeyboardInterrupt:
        error_console.print("\n⚠️  Interrupted by user", style="yellow")
        sys.exit(130)


@cli.command()
def info():
    """Show how libraries are classified and how paths are rewritten."""
    info_text = """
[bold blue]📋 What gets bundled:[/bold blue]

  • Every library referenced through LC_LOAD_DYLIB, recursively
  • Except system libraries under /usr/lib/ and /System/Library/
  • Except frameworks (*.framework) and @executable_path/ references
  • Except prefixes passed with --ignore

[bold blue]🔧 What gets rewritten:[/bold blue]

  • Library references: <install-path><library name>
  • LC_RPATH entries: <install-path>
  • Install id of each bundled copy: <install-path><library name>

[bold blue]💡 Usage Examples:[/bold blue]

  [cyan]dylib-bundler bundle -od -b -x ./app -d ./libs/[/cyan]
  [cyan]dylib-bundler bundle -cd -x ./app -s /opt/local/lib[/cyan]
  [cyan]dylib-bundler config init[/cyan]
"""
    console.print(
        Panel(info_text, title="dylib-bundler Information", border_style="blue")
    )


@cli.group()
def config():
    """Manage configuration files."""
    pass


@config.command("init")
@click.option(
    "--path",
    default=".dylib-bundler.json",
    help="Path for the configuration file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)
    if config_path.exists() and not force:
        raise click.ClickException(
            f"Config file {path} already exists. Use --force to overwrite."
        )

    config_path.write_text(create_sample_config(), encoding="utf-8")
    console.print(f"✅ Sample configuration written to {path}", style="green")


@config.command("show")
def config_show():
    """Show the effective configuration."""
    reset_config()
    console.print_json(data=load_config().to_dict())


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True))
def config_validate(config_file: str):
    """Validate a configuration file."""
    data = load_config_file(Path(config_file))
    if data is None:
        raise click.ClickException(f"Could not read configuration from {config_file}")

    reset_config()
    config_obj = load_config(Path(config_file))
    errors = validate_config_values(config_obj)
    if errors:
        console.print("❌ Configuration is invalid:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)
    console.print("✅ Configuration is valid", style="green")


if __name__ == "__main__":
    cli()
