"""
CrudKit — Middleware Package
==============================

What:  Cross-cutting concerns layered once around all generated routes.

Contents:
    error_handler.py  Error translator (exception → status + uniform body)
    request_id.py     Correlation ID per request (X-Request-ID)
    logging.py        Access log line per request

Middleware Chain:
    Request → [Request ID] → [Logging] → Route Handler
    The app factory adds them in reverse order (last added runs first).
"""
