"""Process monitoring for locally launched agent tasks."""
