"""Entry point when run as ``python app.py``.

Starts the Flask JSON API. The administration CLI stays available through
``python -m proleague``.
"""

from proleague.web import main as run_web


if __name__ == "__main__":
    run_web()
