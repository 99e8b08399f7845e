"""Core domain: errors, models, interfaces."""
