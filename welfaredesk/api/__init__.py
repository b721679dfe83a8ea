"""Web adapter: middleware and error mapping for FastAPI apps."""
