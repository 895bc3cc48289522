"""ssg-zero static site toolkit.

Renders a directory of Markdown, Jinja2 HTML and passthrough files into a
static site, and provides a development loop that polls the sources for
changes, rebuilds them in parallel, and serves the output with live reload.

The main entry point is the CLI module, which provides the build, serve and
dev commands.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
