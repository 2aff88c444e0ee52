# src/logging/__init__.py
