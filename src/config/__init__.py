# src/config/__init__.py
