#!/usr/bin/env python3
"""
Entry point for the squadcup participation engine.

Usage:
    python run.py                    # Run the API server

Environment Variables:
    FLASK_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 5000)
    DATABASE_URL: SQLAlchemy URL of the entity store
"""
import os


def run_server():
    """Run the participation engine API."""
    from squadcup.app import create_app

    app = create_app()
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    print(f"Starting squadcup on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run_server()
