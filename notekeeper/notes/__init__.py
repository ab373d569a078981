"""Note models and the vault-backed note store."""
