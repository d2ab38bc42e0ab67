"""
Print Orders Backend - REST API for print-shop order intake

This package provides a FastAPI-based web service that collects customer
printing jobs and lets the shop administrator manage them. It enables:

- Public order submission with file uploads
- Public order lookup by identifier for status checks
- Admin login with time-limited session tokens
- Admin order listing, status updates and bulk clearing
- Downloading uploaded files by their storage name

Key Components:
    - main: FastAPI application factory and HTTP endpoint definitions
    - order_service: Order submission and management logic
    - auth: Credential verification and admin session handling
    - uploads: Storage of uploaded files on the local filesystem
    - database: SQLite persistence for orders, files and sessions
    - models: Pydantic models for request/response validation
    - configuration: Settings loading from defaults, YAML and environment
    - middleware: Request body size limiting

Usage:
    Run the API server with:
        uvicorn print_orders_backend.main:app --reload --host 0.0.0.0 --port 4173

    Or use the console script:
        print-orders-backend
"""

__version__ = "0.1.0"
