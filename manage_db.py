#!/usr/bin/env python3
"""
Database management script for deployment.

    python manage_db.py create    # create missing tables (default)
    python manage_db.py reset     # drop and recreate every table
"""
import sys

from tableturn.app import create_app
from tableturn.models import db


def create():
    app = create_app()
    with app.app_context():
        db.create_all()
        print("✓ Database tables created.")


def reset():
    app = create_app()
    with app.app_context():
        db.drop_all()
        db.create_all()
        print("✓ Database reset.")


if __name__ == '__main__':
    command = sys.argv[1] if len(sys.argv) > 1 else 'create'
    commands = {'create': create, 'reset': reset}
    if command not in commands:
        print(f"Unknown command: {command}")
        print("Usage: python manage_db.py [create|reset]")
        sys.exit(1)
    try:
        commands[command]()
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
