"""CLI module for warelay."""
