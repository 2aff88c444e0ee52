# src/core/__init__.py
