"""Execution core for the Mix scripting language."""
