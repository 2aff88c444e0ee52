# src/vision/__init__.py
