"""vraagbaak — document ingestion, vector retrieval, and durable chat history."""

__version__ = "0.1.0"
