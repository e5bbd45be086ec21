import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn


def main() -> None:
    host = os.environ.get("CMS_API_HOST", "0.0.0.0")
    port = int(os.environ.get("CMS_API_PORT", "8000"))
    workers = int(os.environ.get("CMS_API_WORKERS", "1"))
    uvicorn.run("content_platform.api.server:app", host=host, port=port, workers=workers, reload=False)


if __name__ == "__main__":
    main()
