"""Authorization extensions."""
