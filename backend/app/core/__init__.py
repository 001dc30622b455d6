"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON logging, dispatch context
    errors          — exception hierarchy
"""
