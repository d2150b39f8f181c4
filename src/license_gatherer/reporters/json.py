import json

from license_gatherer.report import LicenseList
from license_gatherer.reporters.base import BaseReporter


class JsonReporter(BaseReporter):
    """Reporter that serializes the license list as JSON."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def render(self, license_list: LicenseList) -> str:
        return json.dumps(license_list.to_dict(), indent=self.indent) + "\n"

    @property
    def format_name(self) -> str:
        return "json"

    @property
    def default_extension(self) -> str:
        return ".json"
