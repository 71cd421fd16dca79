"""HTTP surface for rendering clients."""
