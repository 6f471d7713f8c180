"""Command line interface for docbatch."""
