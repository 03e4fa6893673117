"""Entrypoint: python -m newsletter_service"""
from __future__ import annotations

import logging

import uvicorn

from newsletter_service.api.middleware.correlation_id import CorrelationIdLogFilter


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdLogFilter())

    uvicorn.run(
        "newsletter_service.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
