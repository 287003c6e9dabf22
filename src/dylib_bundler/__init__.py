"""dylib-bundler: bundle and relocate the shared libraries of Mach-O binaries."""

__version__ = "1.0.0"
