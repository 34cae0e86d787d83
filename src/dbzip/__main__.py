"""Allow ``python -m dbzip``."""

from .cli import app

app()
