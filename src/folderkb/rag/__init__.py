"""folderkb retrieval: vector index, context assembly, scope orchestration."""
