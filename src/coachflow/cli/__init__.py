"""Command-line interface for Coachflow."""
