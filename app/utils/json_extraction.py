"""
Pull a JSON object out of free-form completion text.
"""
import json
from typing import Any, Dict

from app.core.exceptions import MalformedJson, NoJsonFound


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse the span from the first '{' to the last '}' (inclusive).

    Handles prose and markdown fences around a single object. Unrelated braces
    in the surrounding prose, or several objects, make the span invalid and
    surface as MalformedJson.
    """
    text = text or ""
    start = text.find("{")
    end = text.rfind("}")

    if start == -1 or end == -1 or end <= start:
        raise NoJsonFound("No JSON object found in completion")

    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedJson(str(e)) from e
