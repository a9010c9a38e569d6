from typing import Dict, Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode


UTM_FIELDS = ("source", "medium", "campaign", "term", "content")


def build_destination_url(original_url: str, utm: Dict[str, Optional[str]]) -> str:
    """
    Append UTM parameters to the original URL.

    An existing utm_* parameter with the same name is replaced; every other
    query parameter and the fragment are kept. The stored URL is never
    touched; this only builds the redirect target.
    """
    params = [(f"utm_{field}", utm.get(field)) for field in UTM_FIELDS if utm.get(field)]
    if not params:
        return original_url

    parts = urlsplit(original_url)
    replaced = {name for name, _ in params}
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in replaced]
    query.extend(params)

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
