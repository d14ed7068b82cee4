"""
routebridge command line interface.

Runs the controller (aggregator plus reconciler supervision) and offers a dry
run that renders the snapshot for a static route table.
"""

from .main import cli, main, serve_forever

__all__ = ["cli", "main", "serve_forever"]
