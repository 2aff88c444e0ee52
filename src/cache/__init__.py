# src/cache/__init__.py
