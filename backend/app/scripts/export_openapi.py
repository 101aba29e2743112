from __future__ import annotations

import argparse
import json
from pathlib import Path

from backend.app.main import app

DEFAULT_SCHEMA_PATH = Path("openapi") / "streamshelf-openapi.json"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the Streamshelf catalog API OpenAPI schema.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_SCHEMA_PATH,
        help=f"Destination JSON file (default: {DEFAULT_SCHEMA_PATH}).",
    )
    return parser.parse_args(argv)


def export_schema(output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(app.openapi(), indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    schema_path = export_schema(args.output)
    print(f"Wrote OpenAPI schema to {schema_path}")


if __name__ == "__main__":
    main()
