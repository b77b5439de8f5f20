"""SQLite storage plumbing shared by every process that opens the task store."""
