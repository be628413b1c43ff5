from adchecker.app.schemas.session import SessionStage
from adchecker.app.workflow.registry import SessionRegistry


class _Session:
    def __init__(self, session_id, stage=SessionStage.COMPLETE):
        self.session_id = session_id
        self.stage = stage


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _registry(max_sessions=3, ttl=60.0):
    clock = _Clock()
    return SessionRegistry(max_sessions=max_sessions, idle_ttl_seconds=ttl, clock=clock), clock


def test_add_get_remove():
    registry, _ = _registry()
    session = _Session("a")

    registry.add(session)

    assert registry.get("a") is session
    assert registry.remove("a") is session
    assert registry.get("a") is None
    assert registry.remove("a") is None
    assert len(registry) == 0


def test_least_recently_used_idle_session_is_evicted_at_capacity():
    registry, clock = _registry(max_sessions=2)
    registry.add(_Session("a"))
    clock.now = 1
    registry.add(_Session("b"))
    clock.now = 2
    registry.get("a")

    registry.add(_Session("c"))

    assert "b" not in registry
    assert "a" in registry
    assert "c" in registry


def test_busy_sessions_survive_capacity_eviction():
    registry, _ = _registry(max_sessions=1)
    registry.add(_Session("busy", SessionStage.CHECKING))

    registry.add(_Session("new"))

    # Nothing idle to evict: the registry temporarily exceeds its cap
    assert "busy" in registry
    assert "new" in registry


def test_idle_sessions_expire():
    registry, clock = _registry(ttl=60.0)
    registry.add(_Session("idle"))
    registry.add(_Session("busy", SessionStage.ANALYZING))
    clock.now = 30
    registry.add(_Session("recent"))

    clock.now = 61

    assert registry.get("idle") is None
    assert registry.get("busy") is not None
    assert registry.get("recent") is not None


def test_access_refreshes_idle_time():
    registry, clock = _registry(ttl=60.0)
    registry.add(_Session("a"))
    clock.now = 50
    registry.get("a")

    clock.now = 100

    assert registry.get("a") is not None
