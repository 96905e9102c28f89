import fnmatch
import re
from typing import Union


def path_is_match(path: Union[str, list[str]], request_path: str) -> bool:
    """Check whether ``request_path`` is covered by a route pattern.

    Patterns are exact paths, ``fnmatch`` globs (``*`` also crosses ``/``)
    or ``regex:`` prefixed regular expressions anchored at the start.
    A list matches when any of its patterns does.
    """
    if isinstance(path, list):
        return any(path_is_match(p, request_path) for p in path)
    if not isinstance(path, str):
        return False
    if path.startswith("regex:"):
        return re.match(path[len("regex:"):], request_path) is not None
    if any(c in path for c in "*?["):
        return fnmatch.fnmatchcase(request_path, path)
    return path == request_path
