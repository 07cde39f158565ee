#!/usr/bin/env python3
"""
Entry point for the esports platform API.

Usage:
    python run.py

Environment Variables:
    FLASK_ENV: development, testing or production (default: development)
    PORT: Port to run on (default: 5000)
"""
import os

from arena.app import create_app


def run_api():
    """Run the platform API."""
    app = create_app()
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    print(f"Starting platform API on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)


if __name__ == '__main__':
    run_api()
