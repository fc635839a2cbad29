"""Outbound integration gateways."""
