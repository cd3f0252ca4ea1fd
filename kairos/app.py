from __future__ import annotations

import logging

from fastapi import FastAPI

from .config import DATA_FILE, ENABLE_GCAL, OPENAI_API_KEY
from .routes import router

logging.basicConfig(level=logging.INFO)

print("OPENAI_API_KEY:", bool(OPENAI_API_KEY), flush=True)
print("ENABLE_GCAL:", ENABLE_GCAL, flush=True)
print("KAIROS_DATA_FILE:", DATA_FILE or "(memory)", flush=True)


def create_app() -> FastAPI:
  app = FastAPI(title="Kairos")
  app.include_router(router)

  @app.get("/health")
  def health():
    return {"ok": True}

  return app


app = create_app()
