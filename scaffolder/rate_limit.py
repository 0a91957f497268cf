#  Project Scaffolder - Rate Limiter
#
#  Shared slowapi limiter used by app.py and the auth/generate/deploy routes.
#
#  Depends on: config.py
#  Used by:    app.py, routes/auth.py, routes/generate.py, routes/deploy.py

from slowapi import Limiter
from slowapi.util import get_remote_address

from scaffolder.config import cfg

limiter = Limiter(key_func=get_remote_address, default_limits=[cfg("server.rate_limit", "60/minute")])
