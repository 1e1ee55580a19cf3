"""
CLI interface for devwatch using Typer.

Importing the submodules registers their commands on the shared apps.
"""

from ._shared import app  # noqa: F401

from . import monitor  # noqa: F401
from . import config  # noqa: F401


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
