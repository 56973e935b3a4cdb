"""JSON API blueprints mounted under /api/v1."""
