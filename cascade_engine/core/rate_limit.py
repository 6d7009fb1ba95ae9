from slowapi import Limiter
from slowapi.util import get_remote_address

# Per-client-IP limits; applied with ``@limiter.limit(...)`` on endpoints
limiter = Limiter(key_func=get_remote_address)
