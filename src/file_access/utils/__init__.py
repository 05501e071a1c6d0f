"""Cross-cutting helpers: logging setup and decorators."""
