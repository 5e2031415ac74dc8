from meshforge.storage.repo import SessionRepo


class StubOrchestrator:
    def __init__(self):
        self.resets = 0

    def reset(self):
        self.resets += 1


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_same_key_returns_same_orchestrator():
    repo = SessionRepo(StubOrchestrator)
    assert repo.get_or_create("alice") is repo.get_or_create("alice")
    assert repo.get_or_create("alice") is not repo.get_or_create("bob")


def test_drop_resets_and_forgets_session():
    repo = SessionRepo(StubOrchestrator)
    orch = repo.get_or_create("alice")

    assert repo.drop("alice") is orch

    assert orch.resets == 1
    assert repo.keys() == []
    assert repo.drop("alice") is None
    assert repo.get_or_create("alice") is not orch


def test_store_is_capped_and_evicted_sessions_are_reset():
    repo = SessionRepo(StubOrchestrator, maxsize=2)
    first = repo.get_or_create("a")
    repo.get_or_create("b")
    repo.get_or_create("c")

    assert len(repo.keys()) == 2
    assert "c" in repo.keys()
    assert first.resets == 1


def test_idle_sessions_expire_and_are_reset():
    clock = FakeClock()
    repo = SessionRepo(StubOrchestrator, ttl=60, timer=clock)
    old = repo.get_or_create("alice")

    clock.now = 61.0

    assert repo.keys() == []
    assert old.resets == 1
    assert repo.get_or_create("alice") is not old


def test_access_refreshes_expiry():
    clock = FakeClock()
    repo = SessionRepo(StubOrchestrator, ttl=60, timer=clock)
    orch = repo.get_or_create("alice")

    clock.now = 50.0
    repo.get_or_create("alice")
    clock.now = 100.0

    assert repo.keys() == ["alice"]
    assert repo.get_or_create("alice") is orch
    assert orch.resets == 0
