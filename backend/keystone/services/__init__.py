# Services package init
"""
Keystone — Services Layer
===========================

Service Inventory:
    - LoggerService: per-severity logging façade over console and file sinks
    - DailyRotatingFileHandler: daily file sink with retention and audit manifest
"""
