"""Write the Sleep Debt API's OpenAPI document to a static JSON file.

Usage:
    python scripts/export_openapi.py [output_path]   # default: openapi.json at the repo root
"""

import json
import sys
from pathlib import Path

from main import app

DEFAULT_PATH = Path(__file__).resolve().parent.parent / "openapi.json"


def main():
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_PATH
    document = app.openapi()
    out.write_text(json.dumps(document, indent=2) + "\n")
    print(f"Wrote {len(document['paths'])} paths to {out}")


if __name__ == "__main__":
    main()
