"""ciwarden: CI status polling and automated remediation for pull requests."""

__version__ = "0.1.0"
