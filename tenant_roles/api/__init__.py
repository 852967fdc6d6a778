"""FastAPI integration: dependency providers for host applications."""
