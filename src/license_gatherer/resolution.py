"""Resolution of gathered license information against accepted licenses.

For every package an expression is either taken from its declaration or
synthesized from its evidence, checked against the accepted licensees,
and reduced to the smallest set of preferred terms that satisfies it.
Problems become diagnostics pointing into the package's METADATA file,
or into a synthesized one when the expression cannot be located there.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

from license_gatherer.config import Config
from license_gatherer.diagnostics import Diagnostic, Files, Label, LabelStyle
from license_gatherer.errors import ExpressionError
from license_gatherer.expression import Expression, LicenseReq, Licensee
from license_gatherer.models import LicenseInfoKind, Package, PackageLicense

logger = logging.getLogger(__name__)

LICENSE_HEADERS = ("License-Expression", "License")


@dataclass
class Resolved:
    """Outcome of resolving one package.

    Attributes:
        licenses: The minimal license requirements that apply; empty for
            ignored packages and packages that could not be resolved.
        diagnostics: Problems found while resolving, possibly errors.
    """

    licenses: list[LicenseReq] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class Accepted:
    """The global accepted licensees, extended by a package's own."""

    def __init__(
        self, global_: Sequence[Licensee], package: Optional[Sequence[Licensee]] = None
    ) -> None:
        self.global_ = list(global_)
        self.package = list(package or [])

    def __iter__(self) -> Iterator[Licensee]:
        yield from self.global_
        yield from self.package

    def satisfies(self, req: LicenseReq) -> bool:
        return any(licensee.satisfies(req) for licensee in self)

    def __str__(self) -> str:
        text = f"global: [{', '.join(str(l) for l in self.global_)}]"
        if self.package:
            text += f"\npackage: [{', '.join(str(l) for l in self.package)}]"
        return text


def _header_offset(manifest: str, expression: str) -> Optional[int]:
    for header in LICENSE_HEADERS:
        prefix = f"{header}: "
        index = manifest.find(f"{prefix}{expression}")
        if index != -1:
            return index + len(prefix)
    return None


def synthesize_manifest(
    package: Package, existing: Optional[str], expression: str
) -> tuple[str, int]:
    """Write the expression into a METADATA document.

    An existing document keeps its headers and body, with any
    License-Expression header replaced; otherwise a minimal document is
    created for the package.

    Returns:
        The document text and the offset of the expression inside it.
    """
    header = f"License-Expression: {expression}\n"
    if existing is None:
        document = (
            "Metadata-Version: 2.4\n"
            f"Name: {package.name}\n"
            f"Version: {package.version}\n"
            f"{header}"
        )
    else:
        headers, sep, body = existing.partition("\n\n")
        lines = [
            line
            for line in headers.splitlines()
            if not line.startswith("License-Expression:")
        ]
        document = "\n".join(lines) + "\n" + header + (sep[1:] + body if sep else "")

    return document, document.index(header) + len("License-Expression: ")


def _read_manifest(package: Package) -> Optional[str]:
    if package.manifest_path is None:
        return None
    try:
        return package.manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(
            "failed to read manifest path %s for '%s': %s",
            package.manifest_path,
            package,
            e,
        )
        return None


def synthesize_expression(package_license: PackageLicense) -> Optional[str]:
    """AND together the distinct evidence expressions, in sorted order."""
    unique = sorted({lf.license_expr for lf in package_license.license_files})
    if not unique:
        return None
    return " AND ".join(f"({expr})" for expr in unique)


def resolve_package(
    package_license: PackageLicense, accepted: Accepted, files: Files
) -> Resolved:
    """Resolve a single package, adding the buffers it references to files."""
    resolved = Resolved()
    package = package_license.package
    info = package_license.license_info

    if info.kind is LicenseInfoKind.IGNORE:
        return resolved

    if info.kind is LicenseInfoKind.EXPR and info.expression:
        text = info.expression
    else:
        text = synthesize_expression(package_license)
        if text is None:
            logger.warning(
                "unable to synthesize license expression for '%s': no license "
                "specified, and no license files were found",
                package,
            )
            resolved.diagnostics.append(
                Diagnostic.warning(
                    f"'{package}' has no declared license and no license evidence was found"
                )
            )
            return resolved

    try:
        expression = Expression.parse(text)
    except ExpressionError as e:
        file_id = files.add(f"{package}.license", text)
        start, end = e.span or (0, len(text))
        resolved.diagnostics.append(
            Diagnostic.error(
                "failed to parse license expression",
                [Label(LabelStyle.PRIMARY, file_id, start, end, str(e))],
            )
        )
        return resolved

    manifest = _read_manifest(package)
    offset = None
    if info.kind is LicenseInfoKind.EXPR and manifest is not None:
        offset = _header_offset(manifest, text)
    if offset is None:
        manifest, offset = synthesize_manifest(package, manifest, text)

    name = str(package.manifest_path) if package.manifest_path else f"{package}/METADATA"
    manifest_id = files.add(name, manifest)

    failures = expression.evaluate_with_failures(accepted.satisfies)
    if failures:
        logger.debug("'%s' is not satisfied by accepted licenses\n%s", package, accepted)
        resolved.diagnostics.append(
            Diagnostic.error(
                "failed to satisfy license requirements",
                [
                    Label(
                        LabelStyle.SECONDARY,
                        manifest_id,
                        failure.span[0] + offset,
                        failure.span[1] + offset,
                    )
                    for failure in failures
                ],
            )
        )
        return resolved

    try:
        resolved.licenses = expression.minimized_requirements(list(accepted))
    except ExpressionError as e:
        logger.warning("failed to minimize license requirements for '%s': %s", package, e)

    return resolved


def resolve(
    package_licenses: list[PackageLicense],
    accepted: Sequence[Licensee],
    config: Optional[Config] = None,
) -> tuple[Files, list[Resolved]]:
    """Find the minimal set of required licenses for each package.

    Args:
        package_licenses: Gathered license information, in order.
        accepted: Globally accepted licensees, in priority order.
        config: Configuration holding per-package accepted extensions.

    Returns:
        The source map the diagnostics refer to, and one Resolved per
        input, in the same order.
    """
    files = Files()
    results = []
    for package_license in package_licenses:
        package_config = (
            config.package_config(package_license.package) if config else None
        )
        extension = package_config.accepted if package_config else None
        results.append(
            resolve_package(package_license, Accepted(accepted, extension), files)
        )
    return files, results
