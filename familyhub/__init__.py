"""familyhub: family chore workflow and gamification ledger."""

__version__ = '0.1.0'
