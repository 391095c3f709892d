"""
Split T-SQL scripts on GO batch separators

GO is a client-side separator, not T-SQL, so it must be removed before the
text is sent to the engine.
"""

import re
from typing import List

_GO_LINE = re.compile(r"^[ \t]*GO(?:[ \t]+\d+)?[ \t]*(?:--[^\n]*)?$", re.IGNORECASE | re.MULTILINE)


def split_batches(sql_text: str) -> List[str]:
    """
    Split a script into batches, dropping empty ones.

    Example:
        >>> split_batches("SELECT 1\\nGO\\nSELECT 2")
        ['SELECT 1', 'SELECT 2']
    """
    if not sql_text:
        return []
    batches = _GO_LINE.split(sql_text)
    return [batch.strip() for batch in batches if batch.strip()]
