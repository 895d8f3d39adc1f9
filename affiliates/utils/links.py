"""
Referral link helpers.
"""

from urllib.parse import parse_qs, urlencode, urljoin, urlsplit, urlunsplit

from affiliates.config.constants import REF_QUERY_PARAM, SUB_ID_QUERY_PARAM


def build_referral_link(
    base_url: str, code: str, path: str = "/", sub_id: str | None = None
) -> str:
    """
    Build a referral link carrying the affiliate code.

    Existing query parameters of path are kept.

    Examples:
        >>> build_referral_link("https://example.com", "JOHN20", "/pricing")
        'https://example.com/pricing?ref=JOHN20'
        >>> build_referral_link("https://example.com", "JOHN20", sub_id="yt")
        'https://example.com/?ref=JOHN20&sub=yt'
    """
    url = urljoin(base_url.rstrip("/") + "/", (path or "/").lstrip("/"))
    scheme, netloc, url_path, query, fragment = urlsplit(url)

    params = [
        (key, value)
        for key, values in parse_qs(query, keep_blank_values=True).items()
        if key not in (REF_QUERY_PARAM, SUB_ID_QUERY_PARAM)
        for value in values
    ]
    params.append((REF_QUERY_PARAM, code))
    if sub_id:
        params.append((SUB_ID_QUERY_PARAM, sub_id))

    return urlunsplit((scheme, netloc, url_path or "/", urlencode(params), fragment))


def parse_referral_params(query: str) -> tuple[str | None, str | None]:
    """
    Read affiliate code and sub id from a query string or URL.

    Examples:
        >>> parse_referral_params("ref=john20&sub=yt")
        ('JOHN20', 'yt')
        >>> parse_referral_params("https://example.com/?utm_source=x")
        (None, None)
    """
    if "?" in query:
        query = urlsplit(query).query
    params = parse_qs(query.lstrip("?"))
    code = params.get(REF_QUERY_PARAM, [None])[0]
    sub_id = params.get(SUB_ID_QUERY_PARAM, [None])[0]
    return (code.strip().upper() if code else None), sub_id
