"""FastAPI application for the study session engine."""
