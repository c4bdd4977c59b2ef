"""Domain layer for the learning-management API: storage, identity and validation helpers."""
