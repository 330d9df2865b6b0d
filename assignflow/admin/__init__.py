"""Assignment rule administration (create, edit, reorder, import)."""
