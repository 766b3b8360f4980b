"""Main function for imusync."""

from imusync.core import cli


def run_main() -> None:
    """Main entry point to imusync."""
    cli.app()


if __name__ == "__main__":
    cli.app()
