"""HTTP surface for the imaging pipeline."""
