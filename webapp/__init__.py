"""Web entrypoints: FastAPI app and runtime wiring."""
