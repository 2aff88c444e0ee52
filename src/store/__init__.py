# src/store/__init__.py
