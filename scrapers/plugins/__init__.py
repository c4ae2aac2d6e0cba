"""Extractor strategy plugins, one module per target site.

Each module exposes ``load()`` which registers its extractor with
``scrapers.loader.register``.
"""
