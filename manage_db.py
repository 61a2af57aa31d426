#!/usr/bin/env python3
"""
Database management script for deployment.
Run this during the build/deployment pipeline to create the schema.

Usage:
    python manage_db.py create
    python manage_db.py seed-moderator <player-id> [gamertag]
"""
import sys

from squadcup.app import create_app
from squadcup.models import db, Player


def create():
    """Create every table (constraints included) if missing."""
    print("Creating schema...")
    app = create_app()
    with app.app_context():
        db.create_all()
    print("Schema ready.")


def seed_moderator(player_id: str, gamertag: str = None):
    """Mark an externally authenticated player as a moderator."""
    app = create_app()
    with app.app_context():
        player = db.session.get(Player, player_id)
        if player is None:
            player = Player(id=player_id, gamertag=gamertag)
            db.session.add(player)
        player.is_moderator = True
        db.session.commit()
    print(f"Player {player_id} is now a moderator.")


if __name__ == '__main__':
    command = sys.argv[1] if len(sys.argv) > 1 else 'create'

    if command == 'create':
        create()
    elif command == 'seed-moderator' and len(sys.argv) >= 3:
        seed_moderator(sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None)
    else:
        print("Usage: python manage_db.py [create|seed-moderator <player-id> [gamertag]]")
        sys.exit(1)
