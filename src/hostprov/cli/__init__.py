"""Command-line interface for hostprov."""
