# Middleware package init
"""
RadCatalog Backend - Middleware Package
=========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Rate Limit] → [Logging] → [GZip] → [CORS] → Route Handler

    - Request ID is set before the rate limiter and the access log read it
    - Rate limit rejects abusive /api/ traffic before any other processing
    - The access log sees the final status code and total duration
"""
