"""
Lesson Library Curation API.

FastAPI backend for the duplicate lesson review workflow.

Run with:
    uvicorn api.main:app --reload --port 8000
"""

from api.main import app

__version__ = "1.0.0"

__all__ = ["app"]
