"""HTTP session factory shared by the SPARQL executor and the label service."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = "kg-loader/0.1"


def create_session(
    max_retries: int = 0,
    backoff_factor: float = 0.5,
    status_forcelist: tuple = (500, 502, 503, 504),
    allowed_methods: tuple = ("GET",),
    user_agent: str = DEFAULT_USER_AGENT,
) -> requests.Session:
    """
    Build a requests Session with a urllib3 retry policy mounted for http(s).

    With the default ``max_retries=0`` every request is attempted once and a
    failure surfaces immediately.  Status-based retries only ever apply to
    ``allowed_methods``; query POSTs are never replayed on a 5xx.

    Args:
        max_retries: Total retry budget per request
        backoff_factor: Sleep multiplier between attempts
        status_forcelist: Statuses retried for ``allowed_methods``
        allowed_methods: Methods eligible for status-based retries
        user_agent: User-Agent header sent with every request
    """
    policy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset(allowed_methods),
        raise_on_status=False,
    )
    session = requests.Session()
    for scheme in ("http://", "https://"):
        session.mount(scheme, HTTPAdapter(max_retries=policy))
    session.headers["User-Agent"] = user_agent
    return session
