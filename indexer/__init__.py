"""Chunk storage, embeddings and retrieval for Covenant Copilot."""
