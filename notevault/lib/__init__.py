"""Vault layer: crypto core, session, attachment indexing and stores."""
