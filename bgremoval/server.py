from __future__ import annotations

import uvicorn

from bgremoval.core.config import Settings


def run() -> None:
    settings = Settings()
    uvicorn.run(
        "bgremoval.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.app_env == "development",
    )


if __name__ == "__main__":
    run()
