"""Provisioning sessions — one module per session kind."""
