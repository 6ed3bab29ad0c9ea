"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Deterministic chunk identity and document chunking with overlap
- Chunk payload encoding for storage
- Embedding providers and FAISS vector storage
- Retrieval, keyword ranking and answer generation
- Document and directory ingestion, coordinated by the pipeline
"""
