import logging

from werkzeug.serving import make_server

from .config import SERVER_HOST, SERVER_PORT, TERRITORY_STORE_PATH
from .server import create_app
from .services import ClaimUploadService, TerritoryRepository


def _setup_logging() -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def build_service() -> ClaimUploadService:
    repository = TerritoryRepository(TERRITORY_STORE_PATH or None)
    return ClaimUploadService(repository)


def main() -> None:
    _setup_logging()
    try:
        service = build_service()
    except (OSError, ValueError) as exc:
        logging.error(
            "Failed to load territory store '%s': %s", TERRITORY_STORE_PATH, exc
        )
        return

    app = create_app(service)
    server = make_server(SERVER_HOST, SERVER_PORT, app, threaded=True)
    logging.info(
        "Claim service listening on http://%s:%s (store=%s)",
        SERVER_HOST,
        SERVER_PORT,
        TERRITORY_STORE_PATH or "memory",
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.info("Shutting down claim service")
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
