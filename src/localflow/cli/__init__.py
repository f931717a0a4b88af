"""
localflow command line.

Entry point: ``localflow`` (see ``localflow.cli.app:app``).
"""
