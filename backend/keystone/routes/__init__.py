# Routes package init
"""
Keystone — API Routes Package
===============================

Route Inventory (all mounted under /<GLOBAL_PREFIX>):
    - greeting.py:  GET  /        (application name and locale)
    - health.py:    GET  /health  (liveness check)
    - files.py:     POST /files   (multipart upload within adapter limits)

Routes stay thin: they read from the request, call helpers and return
response models. Error formatting lives in the global exception handlers.
"""
