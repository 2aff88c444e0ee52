# src/scraping/__init__.py
