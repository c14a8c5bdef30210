"""Command implementations for aitpm; one module per operation."""
