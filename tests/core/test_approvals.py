import threading

import pytest

from core.agent.approvals import ApprovalTable, ModuleResult
from core.agent.directive import Directive
from core.errors import UnknownApprovalRequest


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _create(table, **kw):
    params = dict(
        directive=Directive("lamp", "turnOn"),
        original_prompt="turn on the lamp",
        ai_response="/run module lamp turnOn",
        prior_results=(),
        session_id="s1",
    )
    params.update(kw)
    return table.create(**params)


def test_create_and_resolve_once():
    table = ApprovalTable()
    p = _create(table)
    assert p.request_id in table
    assert len(table) == 1
    assert table.resolve(p.request_id) is p
    assert p.request_id not in table
    with pytest.raises(UnknownApprovalRequest):
        table.resolve(p.request_id)


def test_ids_are_unique():
    table = ApprovalTable()
    ids = {_create(table).request_id for _ in range(50)}
    assert len(ids) == 50


def test_prior_results_frozen_as_tuple():
    table = ApprovalTable()
    prior = [ModuleResult("list", "listAllModules", {"success": True})]
    p = _create(table, prior_results=prior)
    assert p.prior_results == tuple(prior)


def test_concurrent_resolution_has_single_winner():
    table = ApprovalTable()
    rid = _create(table).request_id
    wins, losses = [], []
    barrier = threading.Barrier(10)

    def worker():
        barrier.wait()
        try:
            wins.append(table.resolve(rid))
        except UnknownApprovalRequest:
            losses.append(rid)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(wins) == 1
    assert len(losses) == 9


def test_entries_expire_after_ttl():
    clock = FakeClock()
    table = ApprovalTable(ttl_s=600, clock=clock)
    old = _create(table)
    clock.now += 300
    fresh = _create(table)
    clock.now += 301
    assert old.request_id not in table
    assert table.get(fresh.request_id) is fresh
    with pytest.raises(UnknownApprovalRequest):
        table.resolve(old.request_id)
