"""
FastAPI routers for the Asset Atlas API.

Each module owns one resource and exposes a module-level ``router``.
"""
