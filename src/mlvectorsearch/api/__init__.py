"""REST API for MLVectorSearch."""
