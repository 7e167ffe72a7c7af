"""Helpers shared by the upstream client and the protocol server."""
