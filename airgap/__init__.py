"""Build, verify and load integrity-checked container image bundles."""

__version__ = "0.1.0"
