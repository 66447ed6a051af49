from slowapi import Limiter
from slowapi.util import get_remote_address

from integration_service.core.config import get_settings


def get_rate_limit_key(request):
    """Per submitting source when the form sends one; else per IP."""
    source = (request.headers.get("X-Submission-Source") or "").strip()
    if source:
        return f"source:{source}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_rate_limit_key, enabled=get_settings().rate_limit_enabled)
