"""
Third-party extensions wiring.

Shared Flask extension instances live here so blueprints can import them
without importing the app factory.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

# Both are bound to the app by create_app().
# Routes apply per-endpoint limits with @limiter.limit("X per minute").
limiter = Limiter(key_func=get_remote_address)
csrf = CSRFProtect()
