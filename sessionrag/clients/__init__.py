"""External provider clients: embedding, LLM and rerank."""
