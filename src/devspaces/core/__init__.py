"""Core module: errors, domain enums, models and interfaces."""
