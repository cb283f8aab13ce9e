"""Top-level protovend commands (auto-discovered by the dispatcher)."""
