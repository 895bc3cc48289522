"""Site building for ssg-zero.

Walks the input directory and hands every file to the handler registered for
its extension: passthrough files are copied verbatim, renderable files have
their YAML frontmatter parsed and are rendered to a new extension. Pages are
rendered in parallel through a TaskQueue.

Key pieces:
- load_config: Loads ssg_zero.yaml over DEFAULT_CONFIG.
- Renderer / PASSTHROUGH: File handlers keyed by extension.
- Site: Builds the whole site or single files, and removes outputs.

Paths with a component starting with ``_`` (layouts, partials) are inputs to
other pages and never produce output themselves.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import mistune
import yaml
from jinja2 import (
    Environment,
    FileSystemLoader,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)
from markupsafe import Markup

from .errors import BuildError, describe_error
from .frontmatter import parse_frontmatter
from .task_queue import TaskQueue
from .watcher import iter_files

logger = logging.getLogger(__name__)

CONFIG_FILE = "ssg_zero.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "input_dir": "site",
    "output_dir": "output",
    "layouts_dir": "_layouts",
    "port": 6942,
    "poll_interval_ms": 500,
    "disable_delete": False,
    "concurrency": 8,
    "passthrough": [
        ".css",
        ".js",
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".svg",
        ".ico",
        ".webp",
        ".woff",
        ".woff2",
        ".txt",
        ".json",
        ".xml",
    ],
}

_FALLBACK_LAYOUT = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ page.title | default("") }}</title>
</head>
<body>
{{ content }}
</body>
</html>
"""


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from ssg_zero.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.
    """
    config_path = project_root / CONFIG_FILE
    config = dict(DEFAULT_CONFIG)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config.update(loaded)
    return config


@dataclass(frozen=True)
class Renderer:
    """Renders the body of a source file to the ``generates`` extension.

    ``render`` receives the content after frontmatter and the frontmatter data.
    """

    generates: str
    render: Callable[[str, dict[str, Any]], str]


class _Passthrough:
    def __repr__(self) -> str:
        return "PASSTHROUGH"


PASSTHROUGH = _Passthrough()

FileHandler = Renderer | _Passthrough


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        outputs: Files written, in completion order.
        output_dir: Directory the site was built into.
    """

    outputs: list[Path] = field(default_factory=list)
    output_dir: Path | None = None


def create_environment(input_dir: Path) -> Environment:
    """Jinja2 environment that loads templates relative to the input directory."""
    return Environment(
        loader=FileSystemLoader(str(input_dir)),
        autoescape=select_autoescape(["html", "htm", "xml"]),
    )


def markdown_renderer(env: Environment, layouts_dir: str) -> Renderer:
    """Markdown rendered with mistune and wrapped in a Jinja2 layout.

    The layout is ``<layouts_dir>/<page.layout or "default">.html``. A missing
    default layout falls back to a bare HTML document; a missing named layout
    is an error.
    """
    markdown = mistune.create_markdown(
        escape=False, plugins=["strikethrough", "table", "url"]
    )

    def render(content: str, data: dict[str, Any]) -> str:
        body = Markup(markdown(content))
        layout = data.get("layout")
        try:
            template = env.get_template(f"{layouts_dir}/{layout or 'default'}.html")
        except TemplateNotFound:
            if layout:
                raise
            template = env.from_string(_FALLBACK_LAYOUT)
        return template.render(content=body, page=data)

    return Renderer(".html", render)


def jinja_renderer(env: Environment) -> Renderer:
    """HTML rendered as a Jinja2 template with the page data in context."""

    def render(content: str, data: dict[str, Any]) -> str:
        return env.from_string(content).render({**data, "page": data})

    return Renderer(".html", render)


def default_handlers(input_dir: Path, config: Mapping[str, Any]) -> dict[str, FileHandler]:
    env = create_environment(input_dir)
    handlers: dict[str, FileHandler] = {
        extension: PASSTHROUGH for extension in config.get("passthrough", [])
    }
    handlers[".md"] = markdown_renderer(env, str(config.get("layouts_dir", "_layouts")))
    handlers[".html"] = jinja_renderer(env)
    return handlers


class Site:
    """A project's input and output directories plus its file handlers.

    Attributes:
        project_root: Root directory of the project.
        input_dir: Directory holding source files.
        output_dir: Directory the site is written to.
        concurrency: Files rendered in parallel by build().
        handlers: Extension to FileHandler mapping.
    """

    def __init__(
        self,
        project_root: Path,
        config: Mapping[str, Any] | None = None,
        handlers: Mapping[str, FileHandler] | None = None,
    ):
        self.project_root = project_root
        self.config = dict(config) if config is not None else load_config(project_root)
        self.input_dir = project_root / self.config.get("input_dir", "site")
        self.output_dir = project_root / self.config.get("output_dir", "output")
        self.concurrency = int(self.config.get("concurrency", 8))
        self.handlers = dict(handlers) if handlers is not None else default_handlers(
            self.input_dir, self.config
        )

    def handler_for(self, path: Path) -> FileHandler | None:
        return self.handlers.get(path.suffix.lower())

    def is_source(self, path: Path) -> bool:
        """Whether path produces output of its own (not a layout or partial)."""
        try:
            relative = path.relative_to(self.input_dir)
        except ValueError:
            return False
        return not any(part.startswith("_") for part in relative.parts)

    def output_path(self, path: Path) -> Path | None:
        """Where the output for an input file goes, or None if it has none."""
        handler = self.handler_for(path)
        if handler is None or not self.is_source(path):
            return None
        target = self.output_dir / path.relative_to(self.input_dir)
        if isinstance(handler, Renderer):
            target = target.with_suffix(handler.generates)
        return target

    def build_file(self, path: Path) -> Path | None:
        """Render or copy one input file and return the output path.

        Raises:
            BuildError: If reading, parsing or rendering the file fails.
        """
        target = self.output_path(path)
        if target is None:
            logger.info("Ignoring file '%s' with unhandled extension '%s'", path, path.suffix)
            return None
        handler = self.handler_for(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if handler is PASSTHROUGH:
            logger.info("Copying file '%s' to '%s'", path, target)
            shutil.copyfile(path, target)
            return target

        logger.info("Rendering %s to %s", path, target)
        try:
            text = path.read_text(encoding="utf-8")
            data, content = parse_frontmatter(text)
            rendered = handler.render(content, data)
        except TemplateSyntaxError as exc:
            raise BuildError(
                path, f"Template syntax error on line {exc.lineno}: {exc.message}", exc
            ) from exc
        except Exception as exc:
            raise BuildError(path, describe_error(exc), exc) from exc
        target.write_text(rendered, encoding="utf-8")
        logger.debug("Finished rendering %s", target)
        return target

    def remove(self, path: Path) -> Path | None:
        """Delete the output of a removed input file, if there was one."""
        target = self.output_path(path)
        if target is None:
            return None
        try:
            target.unlink()
        except FileNotFoundError:
            return None
        logger.info("Removed %s", target)
        return target

    async def build(self, clean: bool = False) -> BuildResult:
        """Build every source file, ``concurrency`` files at a time.

        Args:
            clean: Wipe the output directory first.
        """
        if not self.input_dir.is_dir():
            raise FileNotFoundError(f"Expected input directory at {self.input_dir}")
        if clean and self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        queue: TaskQueue[Path, Path | None] = TaskQueue(
            self._build_in_thread, self.concurrency, lifo=False
        )
        for name in iter_files(self.input_dir):
            path = Path(name)
            if self.is_source(path):
                queue.push(path)
        result = BuildResult(output_dir=self.output_dir)
        async for target in queue:
            if target is not None:
                result.outputs.append(target)
        logger.info("Built %d files into %s", len(result.outputs), self.output_dir)
        return result

    async def _build_in_thread(self, path: Path) -> Path | None:
        return await asyncio.to_thread(self.build_file, path)
