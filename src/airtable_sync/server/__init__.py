"""FastAPI server for the sync worker."""
