"""Operational CLI (typer)."""
