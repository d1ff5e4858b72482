"""Run the API with uvicorn: ``python -m dgt_coach``."""

import uvicorn

from dgt_coach.config import settings


def main() -> None:
    uvicorn.run(
        "dgt_coach.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
