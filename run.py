#!/usr/bin/env python3
"""
Main entry point for running the FitSlot booking API
"""

from fitslot.main import create_app
import os

if __name__ == '__main__':
    app = create_app(os.environ.get('FITSLOT_ENV', 'development'))

    print("Starting FitSlot booking API...")
    print("Access the API at: http://localhost:5001/api")
    print("\nPress CTRL+C to stop the server")

    app.run(
        host='0.0.0.0',
        port=5001,
        debug=app.config.get('DEBUG', False)
    )
