"""
Entry point for running contactrack_sync as a module.

Usage:
    python -m contactrack_sync --help
    python -m contactrack_sync auth
    python -m contactrack_sync sync
"""

from contactrack_sync.cli import cli

if __name__ == "__main__":
    cli()
