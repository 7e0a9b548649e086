# expense_portal/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# This cli/config.py file is at <project>/expense_portal/cli/config.py
project_root = Path(__file__).parent.parent.parent.resolve()
DOTENV_PATH = project_root / '.env'

# Values from .env win over the shell so the CLI and the server agree
load_dotenv(dotenv_path=DOTENV_PATH, override=True)

# Base URL of a running portal, used by commands that talk to the API
EXPENSE_CLI_API_BASE_URL = os.getenv("EXPENSE_CLI_API_BASE_URL", "http://127.0.0.1:8000")
