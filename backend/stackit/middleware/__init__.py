# Middleware package init
"""
StackIt Backend — Middleware Package
======================================

Middleware Chain (request direction):
    [Rate Limit] → [Request ID] → [Access Log] → [GZip] → [CORS] → route

    Rate limiting runs first so rejected clients cost nothing. The request id
    is set before the access log line is written so both share it.
"""
