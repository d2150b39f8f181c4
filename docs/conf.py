# Sphinx configuration for the license-gatherer documentation.

import os
import sys

# autodoc imports license_gatherer straight from the source tree
sys.path.insert(0, os.path.abspath("../src"))

from license_gatherer import __version__  # noqa: E402

# -- Project information -----------------------------------------------------
project = "License Gatherer"
copyright = "2025, License Gatherer Contributors"
author = "License Gatherer Contributors"
release = __version__
version = ".".join(__version__.split(".")[:2])

# -- General configuration ---------------------------------------------------
extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.intersphinx",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "myst_parser",
    "sphinxcontrib.mermaid",
]

root_doc = "index"
source_suffix = {".md": "markdown", ".rst": "restructuredtext"}

# Docstrings are Google style throughout the package.
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True

myst_enable_extensions = ["colon_fence", "deflist"]
myst_heading_anchors = 3

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "aiohttp": ("https://docs.aiohttp.org/en/stable", None),
    "packaging": ("https://packaging.pypa.io/en/stable", None),
    "pydantic": ("https://docs.pydantic.dev/latest", None),
}

exclude_patterns = ["_build"]

# -- Options for HTML output -------------------------------------------------
html_theme = "sphinx_rtd_theme"
html_title = f"License Gatherer {release}"

# -- Autodoc settings --------------------------------------------------------
autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
    "undoc-members": True,
}
autodoc_typehints = "description"
autodoc_class_signature = "separated"

# Frozen dataclasses document their fields twice otherwise.
suppress_warnings = ["ref.python"]
