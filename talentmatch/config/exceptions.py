"""Errors raised while loading configuration and input files."""

from pathlib import Path
from typing import List, Optional, Union


class ConfigurationError(Exception):
    """
    A configuration or dataset file (or the environment) could not be used.

    Carries every problem found in one pass, so that the CLI can print them
    all at once, plus hints on how to fix them.

    Attributes:
        message: One-line summary
        errors: Individual problems, e.g. "scheduler -> job_timeout: ..."
        suggestions: Hints printed after the errors
        source: File the problems were found in, if any
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Union[str, Path, None] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        self.source = str(source) if source is not None else None
        super().__init__(self.render())

    def render(self) -> str:
        lines = [self.message if self.source is None else f"{self.message} [{self.source}]"]

        if self.errors:
            lines.append("")
            lines.append(f"{len(self.errors)} problem(s):")
            lines.extend(f"  {number}. {error}" for number, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("")
            lines.append("Try:")
            lines.extend(f"  - {hint}" for hint in self.suggestions)

        return "\n".join(lines)
