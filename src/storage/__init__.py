# src/storage/__init__.py
