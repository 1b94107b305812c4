"""devspaces - ephemeral per-user development workspaces."""

__version__ = "0.1.0"
