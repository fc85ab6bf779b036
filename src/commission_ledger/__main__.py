"""Entry point for running the application with uvicorn."""

import uvicorn

from commission_ledger.config import get_settings
from commission_ledger.log_config import configure_logging


def main() -> None:
    """Run the application."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "commission_ledger.api.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
