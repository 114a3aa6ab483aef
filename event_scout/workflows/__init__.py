"""End-to-end workflows: discovery, extraction and duplicate cleanup."""
