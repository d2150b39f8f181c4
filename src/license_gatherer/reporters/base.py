"""Base interface for output reporters."""

from abc import ABC, abstractmethod
from pathlib import Path

from license_gatherer.report import LicenseList


class BaseReporter(ABC):
    """Abstract base class for output reporters."""

    @abstractmethod
    def render(self, license_list: LicenseList) -> str:
        """Render the license list.

        Args:
            license_list: The generated license list.

        Returns:
            Rendered output as a string.
        """
        ...

    def write(self, license_list: LicenseList, output_path: Path) -> None:
        """Render and write output to a file."""
        output_path.write_text(self.render(license_list), encoding="utf-8")

    @property
    @abstractmethod
    def format_name(self) -> str:
        ...

    @property
    @abstractmethod
    def default_extension(self) -> str:
        ...
