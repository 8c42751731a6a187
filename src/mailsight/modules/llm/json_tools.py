from __future__ import annotations

import json
import re
from typing import Any


def parse_json_object(content: str) -> Any:
    """Parse model output, tolerating prose or code fences around a single object."""
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except Exception:
        pass

    # Fallback: extract the first {...} block.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except Exception:
        return None
