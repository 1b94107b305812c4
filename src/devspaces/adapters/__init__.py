"""Adapters for external collaborators (container runtime, identity provider)."""
