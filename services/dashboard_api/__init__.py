"""HTTP surface for the clinic dashboard."""
