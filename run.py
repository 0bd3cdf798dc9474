"""Development server for the moderation desk.

Usage:
    python run.py
    PORT=8000 python run.py

Production serves placify:create_app() from a threaded WSGI server.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # .env must be loaded before the config classes read os.environ

from placify import create_app

app = create_app()

if __name__ == "__main__":
    # Each open /admin/api/events/stream holds a thread
    app.run(
        debug=app.config.get("DEBUG", False),
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", 5001)),
        threaded=True,
        use_reloader=False,
    )
