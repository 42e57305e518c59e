"""FastAPI application for the tour booking backend."""
