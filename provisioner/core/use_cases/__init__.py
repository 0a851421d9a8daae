"""Use cases — end-to-end operations called by the CLI."""
