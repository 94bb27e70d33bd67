"""Command-line interface for the prescription safety engine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError as RequestValidationError

from application.api.prescription_safety_models import EvaluateRequest
from application.rules import (
    PrescriptionSafetyEngine,
    SafetyEngineConfig,
    build_default_catalog,
    load_catalog,
)
from config.safety_config import get_safety_config
from domain.prescription_safety_models import RuleCatalogError, ValidationError

# --- Environment Loading ---
load_dotenv()

logger = logging.getLogger(__name__)


# --- Typer App ---
app = typer.Typer(
    help="Evaluate prescriptions and validate rule catalogs.",
    add_completion=False,
)


def _load_catalog_or_exit(path: Optional[str]):
    if not path:
        return build_default_catalog()
    try:
        return load_catalog(path)
    except RuleCatalogError as e:
        typer.echo(f"Catalog error: {e}", err=True)
        raise typer.Exit(code=2)


# --- CLI Commands ---


@app.command("check-catalog")
def check_catalog(path: str):
    """Loads a rule catalog file and prints its statistics."""
    catalog = _load_catalog_or_exit(path)
    summary = catalog.describe()
    typer.echo(json.dumps(summary, indent=2))
    if catalog.rejected_entries:
        typer.echo(f"{catalog.rejected_entries} malformed entries were skipped", err=True)
        raise typer.Exit(code=1)


@app.command()
def evaluate(
    request_file: Path,
    catalog: Optional[str] = typer.Option(None, help="Rule catalog file (built-in when omitted)"),
):
    """Evaluates a JSON request with 'patient' and 'medication' objects."""
    config = get_safety_config()
    rule_catalog = _load_catalog_or_exit(catalog or config.catalog.path)

    try:
        request = EvaluateRequest.model_validate_json(request_file.read_text())
        patient = request.patient.to_domain()
        medication = request.medication.to_domain()
    except (OSError, RequestValidationError, ValidationError) as e:
        typer.echo(f"Invalid request: {e}", err=True)
        raise typer.Exit(code=2)

    engine = PrescriptionSafetyEngine(
        config=SafetyEngineConfig(
            enable_dosage_overlap_check=config.engine.enable_dosage_overlap_check,
        )
    )
    result = engine.evaluate(patient, medication, rule_catalog)
    typer.echo(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    app()
