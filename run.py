"""
Local development entry point.

Creates the Flask app via create_app() and runs the dev server.
"""

import os

# Must be set before create_app() reads it
os.environ.setdefault("APP_CONFIG", "gardenstudio.config.DevConfig")

from gardenstudio import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=os.getenv("FLASK_DEBUG", "1") == "1")
