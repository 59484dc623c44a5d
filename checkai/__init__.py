"""CheckAI: claim extraction, evidence retrieval and verdict fusion for documents."""

__version__ = "0.1.0"
