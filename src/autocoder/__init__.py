"""autocoder: token-budgeted code suggestions with multi-model fallback."""

__version__ = "0.1.0"
