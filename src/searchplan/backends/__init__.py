"""Concrete search engine backends."""
