"""HTTP API for the acquisition pipeline."""
