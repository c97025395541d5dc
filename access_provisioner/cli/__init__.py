"""
CLI Package for the Access Provisioner.

Exposes the `provisionctl` click command group.
"""

from .provisionctl import cli, main

__all__ = ["cli", "main"]
