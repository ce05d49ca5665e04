"""HTTP clients for external verification services."""
