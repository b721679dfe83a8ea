"""Administrative services."""
