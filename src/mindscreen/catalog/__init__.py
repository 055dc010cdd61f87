"""Packaged assessment catalog data (``default_catalog.yaml``)."""
