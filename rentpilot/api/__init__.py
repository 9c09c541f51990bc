"""HTTP layer: FastAPI application, routers, request schemas and errors."""
