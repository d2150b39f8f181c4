"""Markdown reporter for license attribution files.

Renders the license list through a Jinja2 template, either the bundled
default or one supplied by the user. Both get the ``anchor`` and
``fence`` filters.
"""

import re
from importlib.resources import files
from pathlib import Path
from typing import Optional

from jinja2 import BaseLoader, DictLoader, Environment, FileSystemLoader, Template

from license_gatherer.report import LicenseList
from license_gatherer.reporters.base import BaseReporter

DEFAULT_TEMPLATE = "licenses.md.j2"


def anchor(license_id: str) -> str:
    """Turn an SPDX id into a Markdown link target, e.g. "apache-2-0"."""
    return re.sub(r"[^a-z0-9]+", "-", license_id.lower()).strip("-")


def fence(text: str) -> str:
    """Return a code fence longer than any run of backticks in text."""
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    return "`" * max(3, longest + 1)


def _environment(loader: BaseLoader) -> Environment:
    env = Environment(loader=loader, autoescape=False, keep_trailing_newline=True)
    env.filters["anchor"] = anchor
    env.filters["fence"] = fence
    return env


class MarkdownReporter(BaseReporter):
    """Reporter that generates Markdown license attribution files.

    Templates receive ``overview``, ``licenses`` and ``packages`` from the
    LicenseList.

    Attributes:
        template: The Jinja2 template to use for rendering.
    """

    def __init__(self, template_path: Optional[Path] = None) -> None:
        """Initialize the Markdown reporter.

        Args:
            template_path: Optional path to a custom Jinja2 template.
                If not provided, uses the default bundled template.
        """
        if template_path:
            env = _environment(FileSystemLoader(template_path.parent))
            self.template = env.get_template(template_path.name)
        else:
            self.template = self._load_default_template()

    def _load_default_template(self) -> Template:
        source = (
            files("license_gatherer.templates")
            .joinpath(DEFAULT_TEMPLATE)
            .read_text(encoding="utf-8")
        )
        env = _environment(DictLoader({DEFAULT_TEMPLATE: source}))
        return env.get_template(DEFAULT_TEMPLATE)

    def render(self, license_list: LicenseList) -> str:
        return self.template.render(
            overview=license_list.overview,
            licenses=license_list.licenses,
            packages=license_list.packages,
        )

    @property
    def format_name(self) -> str:
        return "markdown"

    @property
    def default_extension(self) -> str:
        return ".md"
