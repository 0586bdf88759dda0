"""
Exportación de listados a CSV.
"""
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import Response


def format_csv_value(value: Any) -> str:
    """Representación de un valor para una celda CSV."""
    if value is None:
        return ""
    elif isinstance(value, Enum):
        return str(value.value)
    elif isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    elif isinstance(value, bool):
        return "Sí" if value else "No"
    else:
        return str(value)


def build_csv(data: List[Dict[str, Any]], headers: Dict[str, str]) -> str:
    """
    Args:
        data: Filas como diccionarios
        headers: Campo -> título de la columna, en el orden de salida
    """
    output = io.StringIO()
    fieldnames = list(headers.keys())
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")

    writer.writerow(headers)
    for row in data:
        writer.writerow({key: format_csv_value(row.get(key)) for key in fieldnames})

    content = output.getvalue()
    output.close()
    return content


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Optional[Dict[str, str]] = None
) -> Response:
    """Respuesta CSV descargable; sin filas solo se envían los encabezados."""
    if headers is None:
        headers = {key: key for key in (data[0].keys() if data else [])}

    return Response(
        content=build_csv(data, headers),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )
