"""Flask web app exposing the product scraper over HTTP.

Run with ``python -m web.app`` from the repository root.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask

# Load environment variables from .env file (explicitly specify path)
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from productscrape.logging_config import setup_logging  # noqa: E402

from .api import api  # noqa: E402
from .config import FLASK_DEBUG, FLASK_HOST, FLASK_PORT, LOG_TO_FILE  # noqa: E402

setup_logging(
    level=logging.DEBUG if FLASK_DEBUG else logging.INFO,
    log_to_file=LOG_TO_FILE,
)

app = Flask(__name__)
app.register_blueprint(api)


if __name__ == "__main__":
    app.run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
