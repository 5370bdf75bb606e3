"""CLI entry point for lsprelay."""

import sys


def main() -> int:
    """Main entry point for lsprelay CLI."""
    from lsprelay.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
