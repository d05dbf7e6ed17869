"""
skillpath - study session engine for goal skill trees and decks.

Packages:
- core: domain records, enumerations, protocols, errors
- scheduling: default spaced-repetition scheduler
- study: session lifecycle, card selection, guided traversal, deck sync
- db: SQLAlchemy models and storage adapters
- api: FastAPI application and routers
- cli: operational commands (typer)
"""

__version__ = "0.1.0"
