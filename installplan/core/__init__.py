"""Domain exception hierarchy."""
