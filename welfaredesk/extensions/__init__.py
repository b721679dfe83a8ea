"""Optional extensions registered through the core registries."""
