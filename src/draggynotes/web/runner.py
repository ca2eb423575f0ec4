import uvicorn

from draggynotes.app import App
from draggynotes.config import Config
from draggynotes.web.server import create_fastapi_app


def run_server(app: App, config: Config) -> None:
    """Serve the local API for the UI process.

    `log_config=None` leaves uvicorn's records to the logging setup done in
    `setup_logging`; request lines are only emitted in debug mode.
    """
    uvicorn.run(
        create_fastapi_app(app, config),
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=config.debug,
    )
