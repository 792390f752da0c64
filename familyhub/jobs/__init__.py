"""Background jobs for familyhub."""
