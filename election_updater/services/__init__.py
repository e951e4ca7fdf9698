"""Domain services: research, extraction, merging, validation and review."""
