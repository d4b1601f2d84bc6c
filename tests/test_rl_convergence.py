from gridlab.rl.convergence import ConvergenceTracker


def test_tracker_caps_history_and_flags_convergence():
    t = ConvergenceTracker(capacity=3)
    assert t.latest is None
    for i, d in enumerate([5.0, 1.0, 0.5, 0.2], start=1):
        assert t.record(i, d) is False  # no threshold -> display only
    assert [p.step for p in t.history] == [2, 3, 4]
    assert t.record(5, 0.0005, threshold=0.001) is True
    assert t.converged and t.latest.delta == 0.0005
    t.reset()
    assert len(t) == 0 and not t.converged
