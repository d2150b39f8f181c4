"""Built-in clarifications for distributions that confuse classification.

Each workaround maps a package to the clarification that proves its
license, or None when the workaround does not apply. File paths follow
the layout of the installed .dist-info directory. The table is closed;
users enable entries by name in their configuration.
"""

from pathlib import Path
from typing import Callable, Optional

from packaging.utils import canonicalize_name

from license_gatherer.config import Clarification, ClarificationFile
from license_gatherer.models import Package

Workaround = Callable[[Package], Optional[Clarification]]


def _license_file(package: Package, name: str) -> Path:
    """Locate a license file inside the package's .dist-info directory.

    Wheels built for core metadata 2.4 install license files under
    licenses/; older wheels put them next to METADATA.
    """
    current = Path("licenses") / name
    root = package.scan_root
    if root is not None and not (root / current).is_file() and (root / name).is_file():
        return Path(name)
    return current


def _cryptography(package: Package) -> Optional[Clarification]:
    # LICENSE only points at the two real license texts.
    return Clarification(
        license="Apache-2.0 OR BSD-3-Clause",
        files=[
            ClarificationFile(
                path=_license_file(package, "LICENSE"),
                checksum="3e0c7c091a948b82533ba98fd7cbb40432d6f1a9acbf85f5922d2f99a93ae6bb",
            ),
            ClarificationFile(
                path=_license_file(package, "LICENSE.APACHE"),
                license="Apache-2.0",
                checksum="aac73b3148f6d1d7111dbca32099f68d26c644c6813ae1e4f05f6579aa2663fe",
            ),
            ClarificationFile(
                path=_license_file(package, "LICENSE.BSD"),
                license="BSD-3-Clause",
                checksum="602c4c7482de6479dd2e9793cda275e5e63d773dacd1eca689232ab7008fb4fb",
            ),
        ],
    )


def _packaging(package: Package) -> Optional[Clarification]:
    return Clarification(
        license="Apache-2.0 OR BSD-2-Clause",
        files=[
            ClarificationFile(
                path=_license_file(package, "LICENSE"),
                checksum="cad1ef5bd340d73e074ba614d26f7deaca5c7940c3d8c34852e65c4909686c48",
            ),
            ClarificationFile(
                path=_license_file(package, "LICENSE.APACHE"),
                license="Apache-2.0",
                checksum="0d542e0c8804e39aa7f37eb00da5a762149dc682d7829451287e11b938e94594",
            ),
            ClarificationFile(
                path=_license_file(package, "LICENSE.BSD"),
                license="BSD-2-Clause",
                checksum="b70e7e9b742f1cc6f948b34c16aa39ffece94196364bc88ff0d2180f0028fac5",
            ),
        ],
    )


def _certifi(package: Package) -> Optional[Clarification]:
    # The MPL block is embedded in the notice for the bundled CA file.
    return Clarification(
        license="MPL-2.0",
        files=[
            ClarificationFile(
                path=_license_file(package, "LICENSE"),
                checksum="ac19100c18ec88eb273e0be74d961bcc15fcf21944c3c1a8b71fa160aa3934d7",
                start="This Source Code Form is subject to",
                end="MPL/2.0/.",
            ),
        ],
    )


def _typing_extensions(package: Package) -> Optional[Clarification]:
    # LICENSE is the full CPython license history; only the PSF agreement applies.
    return Clarification(
        license="PSF-2.0",
        files=[
            ClarificationFile(
                path=_license_file(package, "LICENSE"),
                checksum="db2e366a9459bf5df36ca35f941f1eaf66f71698b0122488e679ca89e565dad2",
                start="PYTHON SOFTWARE FOUNDATION LICENSE VERSION 2",
                end="Agreement.",
            ),
        ],
    )


REGISTRY: dict[str, Workaround] = {
    "certifi": _certifi,
    "cryptography": _cryptography,
    "packaging": _packaging,
    "typing-extensions": _typing_extensions,
}


def lookup(name: str) -> Optional[Workaround]:
    """Return the workaround registered under a (non-normalized) name."""
    return REGISTRY.get(canonicalize_name(name))


def names() -> list[str]:
    return sorted(REGISTRY)
