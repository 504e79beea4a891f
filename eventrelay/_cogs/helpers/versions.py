"""
Detecting the relay's own version.

The codebase does not contain the version directly: releases depend on
tagging rather than in-code version bumps (see ``setuptools_scm``).

The version is determined only once at startup when the code is loaded.
"""
import importlib.metadata

version: str | None = None

try:
    name, *_ = __name__.split('.')  # usually "eventrelay", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree without installation.
