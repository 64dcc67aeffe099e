"""Retrieval augmentation: passage chunking, embedding cache and ranking."""
