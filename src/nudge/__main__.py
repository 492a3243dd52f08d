"""Nudge CLI bootstrap."""

from nudge.cli import app

if __name__ == "__main__":
    app()
