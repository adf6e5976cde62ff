"""Infrastructure layer: clients for the backing resource store."""
