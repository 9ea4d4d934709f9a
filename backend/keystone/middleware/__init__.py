# Middleware package init
"""
Keystone — Middleware Package
==============================

Middleware Chain (outermost first):
    Request → [Proxy Headers] → [Rate Limit] → [Request Logging, dev only] → Route

    1. Proxy Headers: restore the real client address behind a proxy
    2. Rate Limit: reject excess requests before any processing
    3. Request Logging: duration of handled requests (development)
"""
