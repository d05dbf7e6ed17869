"""
Database Module - SQLAlchemy models and storage adapters.

Components:
- database: lazy async engine, session factory and FastAPI dependency
- models: ORM tables (goals, skill trees, flashcards, decks, sessions, jobs)
- stores: SQL implementations of the study engine's collaborator protocols
"""
