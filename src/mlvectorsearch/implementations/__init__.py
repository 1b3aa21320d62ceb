"""Concrete vectors, metrics and collections for MLVectorSearch."""
