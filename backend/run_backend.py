#!/usr/bin/env python
"""Serve the gamification API with uvicorn (HOST/PORT from settings)."""
import uvicorn

from backend.core.config import settings


def main() -> None:
    uvicorn.run("backend.main:app", host=settings.HOST, port=settings.PORT, log_level="info")


if __name__ == "__main__":
    main()
