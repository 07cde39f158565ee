#!/usr/bin/env python3
"""
Database management script for deployment.

Usage:
    python manage_db.py deploy    # apply migrations (default)
    python manage_db.py seed      # insert the badge and achievement catalog
"""
import os
import sys

from flask_migrate import upgrade

from arena.app import create_app
from arena.seed import seed_catalog


def deploy():
    """Run deployment tasks."""
    print("Starting database migration...")
    app = create_app()
    with app.app_context():
        if not os.path.isdir(os.path.join(os.getcwd(), 'migrations')):
            print("No migrations directory; tables were created from the models.")
            return
        try:
            upgrade()
            print("✓ Database migrations applied.")
        except Exception as e:
            print(f"Error applying migrations: {e}")
            sys.exit(1)


def seed():
    """Insert or refresh the badge and achievement catalog."""
    app = create_app()
    with app.app_context():
        badges, achievements = seed_catalog()
        print(f"✓ Seeded {badges} badges and {achievements} achievements.")


if __name__ == '__main__':
    command = sys.argv[1] if len(sys.argv) > 1 else 'deploy'

    if command == 'deploy':
        deploy()
    elif command == 'seed':
        seed()
    else:
        print(f"Unknown command: {command}")
        print("Usage: python manage_db.py [deploy|seed]")
        sys.exit(1)
