"""``python -m banks2ledger`` runs the CLI."""

from .cli import app

app()
