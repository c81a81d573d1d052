import pytest

from main import app
from routers import rate_limit
from services import presence


@pytest.fixture(autouse=True)
def isolate_process_local_state():
    """Rate-limit counters and fallback presence live in module globals."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    presence._local_presence.clear()
    yield
    rate_limit._local_counters.clear()
    presence._local_presence.clear()
    app.state.disable_rate_limits = previous
