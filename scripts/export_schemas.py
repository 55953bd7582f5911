"""Export JSON schemas for the itinerary and the error envelope."""

import json
from pathlib import Path

from backend.app.models import ErrorResponse, ResolvedItinerary


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for name, model in (("ResolvedItinerary", ResolvedItinerary), ("ErrorResponse", ErrorResponse)):
        path = schemas_dir / f"{name}.schema.json"
        with open(path, "w") as f:
            json.dump(model.model_json_schema(by_alias=True), f, indent=2)
        print(f"Exported {name} schema to {path}")


if __name__ == "__main__":
    main()
