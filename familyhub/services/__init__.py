"""Business logic services for familyhub."""
