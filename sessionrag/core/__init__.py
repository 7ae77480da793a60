"""Core cross-cutting concerns: exceptions and logging."""
