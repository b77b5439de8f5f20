"""Task records and their shared store."""
