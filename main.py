import uvicorn

from taskboard.config import settings


def run() -> None:
    uvicorn.run(
        "taskboard.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,  # taskboard.logging_config owns handlers
    )


if __name__ == "__main__":
    run()
