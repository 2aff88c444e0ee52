# src/ratelimit/__init__.py
