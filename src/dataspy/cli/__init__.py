"""
dataspy CLI — Typer-based command-line interface.

Usage::

    dataspy run --rule orphaned_orders
    dataspy run --all
    dataspy daemon
    dataspy history latest -n 20
    dataspy schedule list
"""

from dataspy.cli.app import app

__all__ = ["app"]
