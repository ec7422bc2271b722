"""HTTP API for the governance gateway."""
