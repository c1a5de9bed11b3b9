"""Collaborator clients and data model."""
