"""Adapters connecting the domain to databases, remote APIs and files."""
