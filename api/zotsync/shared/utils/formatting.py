"""
Utilidades de formato para items de Zotero y mensajes de difusión.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from zotsync.shared.constants.sync_constants import PLACEHOLDER_CREATOR_NAME


_ISO_8601 = re.compile(
    r"^\d{4}-?[01]\d-?[0-3]\dT[0-2]\d:?[0-5]\d:?[0-6]\d(\.\d{1,6})?(Z|[+-][01]\d:?([0-5]\d)?)$"
)


def format_duration(seconds: Optional[int]) -> str:
    """
    Convierte una duración en segundos a h:mm:ss, m:ss o 0:ss.

    Ejemplos: 9244 -> '2:34:04', 2722 -> '45:22', 27 -> '0:27'
    """
    if seconds is None:
        return ""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_date(raw_date: Optional[str]) -> Optional[str]:
    """
    Convierte una fecha ISO-8601 a 'YYYY-MM-DD hh:mm:ss' en UTC.
    Si el valor no es ISO-8601 se devuelve tal cual.
    """
    if not raw_date or not _ISO_8601.match(raw_date):
        return raw_date
    normalized = raw_date.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(normalized)
    except ValueError:
        return raw_date
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def package_creators(
    first_names: Optional[Sequence[str]],
    last_names: Optional[Sequence[str]],
    creator_type: str = "contributor",
) -> List[Dict[str, str]]:
    """
    Une los arrays de nombres y apellidos en la lista de creadores de Zotero.

    - Sin nombres: un único creador de reemplazo ('Unknown')
    - Solo nombre o solo apellido: creador de campo único ('name')
    """
    first_names = list(first_names or [])
    last_names = list(last_names or [])
    count = max(len(first_names), len(last_names))

    creators: List[Dict[str, str]] = []
    for i in range(count):
        first = (first_names[i] if i < len(first_names) else "") or ""
        last = (last_names[i] if i < len(last_names) else "") or ""
        first, last = first.strip(), last.strip()
        if first and last:
            creators.append({"creatorType": creator_type, "firstName": first, "lastName": last})
        elif first or last:
            creators.append({"creatorType": creator_type, "name": first or last})

    if not creators:
        creators.append({"creatorType": creator_type, "name": PLACEHOLDER_CREATOR_NAME})
    return creators


def stringify_creators(creators: Sequence[Dict[str, Any]], full_name: bool = True) -> str:
    """
    Genera un byline a partir de los creadores de Zotero.

    Dos nombres se unen con 'and'; tres o más usan coma serial.
    """
    names = []
    for person in creators:
        if person.get("lastName"):
            names.append(
                f"{person.get('firstName', '')} {person['lastName']}".strip()
                if full_name else person["lastName"]
            )
        else:
            names.append(person.get("name", ""))

    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return ", ".join(names[:-1]) + f", and {names[-1]}"


def truncate(text: Optional[str], limit: int) -> str:
    """Recorta el texto a `limit` caracteres agregando elipsis."""
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "…"
