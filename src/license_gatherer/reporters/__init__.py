"""Output reporters for rendering the license list.

This module provides reporters for rendering a LicenseList to Markdown
(through a Jinja2 template) or JSON.
"""

from license_gatherer.reporters.base import BaseReporter
from license_gatherer.reporters.json import JsonReporter
from license_gatherer.reporters.markdown import MarkdownReporter

__all__ = ["BaseReporter", "JsonReporter", "MarkdownReporter"]
