"""Storage backends: vector stores and the SQL chunk table."""
