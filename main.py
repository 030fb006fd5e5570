"""
ASGI entrypoint for deployments (e.g. Render).

The FastAPI app lives in `backend/rentcircle/main.py` and uses imports like
`from rentcircle.db ...`, which requires `backend/` to be on `PYTHONPATH`
when the project is not pip-installed.

With this repo-root `main.py`, Render can run:
  uvicorn main:app --host 0.0.0.0 --port $PORT
"""

from __future__ import annotations

import sys
from pathlib import Path


_BACKEND_DIR = Path(__file__).resolve().parent / "backend"

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from rentcircle.main import app  # noqa: E402,F401
