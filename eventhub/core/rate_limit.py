from slowapi import Limiter
from slowapi.util import get_remote_address
from eventhub.core.config import settings

# One limiter for the whole app; main.py registers it on app.state.
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
