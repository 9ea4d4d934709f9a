"""
Keystone — Application Package Initializer
============================================

What: Server bootstrap wiring FastAPI, environment configuration, rate
      limiting, OpenAPI documentation and rotating-file logging.
Who:  Imported by uvicorn (`keystone.main:app`), pytest and the `keystone`
      console script.

Layout:
    ┌─────────────────────────────────────┐
    │   main.py        application factory │
    ├─────────────────────────────────────┤
    │   routes/        thin HTTP handlers  │
    │   middleware/    rate limit, access  │
    │   swagger.py     OpenAPI document    │
    │   adapter.py     proxy + multipart   │
    ├─────────────────────────────────────┤
    │   services/      logging service     │
    ├─────────────────────────────────────┤
    │   config.py      sections, registry  │
    │   env.py         environment access  │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
