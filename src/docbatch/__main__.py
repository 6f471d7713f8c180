"""Allow running docbatch as ``python -m docbatch``."""

from docbatch.cli.main import app

if __name__ == "__main__":
    app()
