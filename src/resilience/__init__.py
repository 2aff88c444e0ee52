# src/resilience/__init__.py
