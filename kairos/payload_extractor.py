"""
Locates the JSON payload inside a free-form model response.

The vision model may answer with pure JSON, JSON inside a markdown code fence,
or JSON surrounded by prose. The payload is found with a first/last bracket
heuristic and always returned array-shaped.

Known limitation: brackets are not balanced by depth, so brackets inside
string values or prose after the payload can shorten or extend the selected
substring. Such payloads then fail JSON decoding instead of being repaired.
"""

from kairos.exceptions import NoJsonFound
from kairos.logging_helper import Log


def extract(raw: str) -> str:
    """
    Extract the JSON payload from a model response.

    Args:
        raw: Raw text returned by the vision model

    Returns:
        Array-shaped JSON text (a bare object is wrapped in [ ])

    Raises:
        NoJsonFound: if no array or object bracket pair is present
    """
    output = (raw or "").strip()

    array_start = output.find('[')
    object_start = output.find('{')
    array_end = output.rfind(']')
    object_end = output.rfind('}')

    has_array = array_start != -1 and array_end > array_start
    has_object = object_start != -1 and object_end > object_start

    if has_array and (object_start == -1 or array_start < object_start):
        payload = output[array_start:array_end + 1]
        shape = "array"
    elif has_object:
        payload = "[" + output[object_start:object_end + 1] + "]"
        shape = "object"
    else:
        Log.warn(f"No JSON found in model response: {output[:100]}")
        Log.kv({"stage": "extract", "result": "failed", "reason": "no_json"})
        raise NoJsonFound()

    Log.kv({"stage": "extract", "result": "success", "shape": shape, "length": len(payload)})
    return payload
