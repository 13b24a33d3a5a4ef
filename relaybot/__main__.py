from dotenv import load_dotenv

from relaybot.cli.commands import app
from relaybot.utils.helpers import get_data_path

# Existing environment variables win over the data-dir .env file.
load_dotenv(get_data_path() / ".env", override=False)

if __name__ == "__main__":
    app()
