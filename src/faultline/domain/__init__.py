"""Example domain handlers."""
