"""sessionrag: retrieval over therapy-session transcripts."""
