"""Cross-cutting pieces: error taxonomy and logging setup."""
