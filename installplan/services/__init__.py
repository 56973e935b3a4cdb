"""Service layer. Services own business logic and commit."""
