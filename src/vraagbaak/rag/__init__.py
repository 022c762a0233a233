"""Retrieval-augmented answering: embeddings, retrieval, context assembly."""
