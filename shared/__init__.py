"""Shared building blocks for the clinic dashboard services."""
