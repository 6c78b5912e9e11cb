"""Local development entry point.

Usage:
    python run.py

Binds to port 5001. Chat streams hold a worker per open connection,
so the dev server runs threaded.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from tutorhub import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001, threaded=True)
