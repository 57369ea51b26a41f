"""
RAG API Package

HTTP façade for document ingestion and question answering over a
Retrieval-Augmented-Generation backend (Qdrant + Ollama).
"""
