"""Run the scanner with ``python -m scanner``."""

import uvicorn

from scanner.app.core.config import settings

if __name__ == "__main__":
    uvicorn.run("scanner.app.main:app", host="0.0.0.0", port=settings.port)
