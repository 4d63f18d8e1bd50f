"""Persistence edge: collaborator protocols and implementations."""
