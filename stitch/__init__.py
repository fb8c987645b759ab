"""Stitch static site build orchestrator.

This package compiles page templates, stylesheets and scripts into a
deployable output tree. In development it watches the sources, reruns only
the build steps a change affects, and pushes live-reload signals to
connected browsers.

The main entry point is the CLI module, which provides the ``build`` and
``watch`` commands.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
