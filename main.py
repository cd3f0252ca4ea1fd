from __future__ import annotations

import os

from kairos.app import app

if __name__ == "__main__":
  import uvicorn

  host = os.getenv("KAIROS_HOST", "0.0.0.0")
  port = int(os.getenv("KAIROS_PORT", "8000"))
  uvicorn.run(app, host=host, port=port)
