#!/usr/bin/env python3
"""
WSGI entry point for Gunicorn
"""
import os

from dentalcare.web_dashboard import create_app

app = create_app()

if __name__ == "__main__":
    app.run(port=int(os.getenv('PORT', 5000)))
