"""Bundle composition, loading and inspection."""
