"""Application entry point for the Listing OCR API server."""

import uvicorn

from listing_ocr.api.app import app
from listing_ocr.utils.config import AppConfig, load_config
from listing_ocr.utils.logger import setup_logging


def main(
    host: str = "0.0.0.0", port: int = 8000, config: AppConfig | None = None
) -> None:
    """Start the API server.

    Args:
        host: Bind address.
        port: Bind port.
        config: Configuration the recognition pool is built from. Loaded
            from ``configs/config.yaml`` when omitted.
    """
    config = config or load_config()
    setup_logging(config.log_level)
    app.state.config = config
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
