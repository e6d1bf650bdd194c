from __future__ import annotations

import uvicorn

from expense_parser.api import create_app
from expense_parser.config import Settings, load_dotenv
from expense_parser.logger import configure_logging

load_dotenv()
_settings = Settings.from_env()
configure_logging(_settings.log_level)

app = create_app(_settings)


def main(host: str = "0.0.0.0", port: int = 8000) -> None:
    uvicorn.run("expense_parser.api_main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
