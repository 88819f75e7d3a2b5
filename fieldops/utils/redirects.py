"""
Redirect URL resolution for notification payloads
"""
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode

from fieldops.models.enums import TargetRole

# payload key -> query parameter
QUERY_FIELDS = {
    "filter": "filtre",
    "rapportId": "rapportId",
    "taskId": "taskId",
    "demandeId": "demandeId",
}


def _string_field(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


def build_redirect_url(redirect_to: str, payload: Optional[Dict[str, Any]] = None) -> str:
    """
    Merge the payload identifiers into redirectTo's query string.

    Only string values are carried over; existing parameters with the same
    name are overridden. Returns the bare path when no query remains.
    """
    payload = payload or {}
    path, _, query = redirect_to.partition("?")
    params = dict(parse_qsl(query, keep_blank_values=True))

    for key, param in QUERY_FIELDS.items():
        value = _string_field(payload, key)
        if value:
            params[param] = value

    if not params:
        return path
    return f"{path}?{urlencode(params)}"


def resolve_redirect(role: TargetRole, payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """Where a click on a notification should lead, None when nowhere"""
    payload = payload or {}
    redirect_to = _string_field(payload, "redirectTo")
    if redirect_to:
        return build_redirect_url(redirect_to, payload)

    task_id = _string_field(payload, "taskId")
    rapport_id = _string_field(payload, "rapportId")
    demande_id = _string_field(payload, "demandeId")

    if task_id and role == TargetRole.CHEF_BRIGADE:
        return f"/brigade/taches?{urlencode({'taskId': task_id})}"
    if rapport_id and role == TargetRole.CHEF_SECTION:
        return f"/rapports?{urlencode({'rapportId': rapport_id})}"
    if demande_id and role == TargetRole.CHEF_SECTION:
        return f"/materiels?{urlencode({'demandeId': demande_id})}"
    return None
