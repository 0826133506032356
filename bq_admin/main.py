"""ASGI entry-point for uvicorn (``bq_admin.main:app``)."""

from bq_admin.config import settings
from bq_admin.server import create_app

app = create_app(settings)

if __name__ == "__main__":
    import logging
    import uvicorn

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "bq_admin.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.app_env == "development"),
    )
