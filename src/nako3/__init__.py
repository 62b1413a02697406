"""Front end for the nadesiko3 programming language."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nako3.analyzer import Analysis, AnalyzerOptions
    from nako3.plugins import PluginRegistry

__version__ = "0.1.0"


def analyze(
    source: str,
    filename: str = "main.nako3",
    options: AnalyzerOptions | None = None,
    registry: PluginRegistry | None = None,
) -> Analysis:
    """Lex, normalize, tag and parse nako3 source."""
    from nako3.analyzer import analyze as _analyze

    return _analyze(source, filename, options=options, registry=registry)
