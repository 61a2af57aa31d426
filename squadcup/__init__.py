"""
squadcup - tournament participation engine

Responsibilities:
- Team formation and per-player confirmation
- Tournament registration behind a moderator gate
- Per-map score submissions and their moderation lifecycle
- Leaderboards aggregated from approved submissions
"""
__version__ = '0.1.0'
