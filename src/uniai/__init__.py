"""UniAI Studio generation backend."""
