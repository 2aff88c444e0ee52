# src/batch/__init__.py
