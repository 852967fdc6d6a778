"""Application layer: services, DTOs and interfaces (ports)."""
