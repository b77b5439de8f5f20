"""Task store schema revisions."""
