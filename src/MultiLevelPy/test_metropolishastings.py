import math
import numpy as np
import pytest
from MultiLevelPy.Logger import MemorySampleSink
from MultiLevelPy.MetropolisHastings import *
from MultiLevelPy.Tree import MultiLevelDataset
from MultiLevelPy.TreeFactor import MultiLevelBMTreeFactor


################
### HELPERS ####
################

def small_factor() -> MultiLevelBMTreeFactor:
    data = MultiLevelDataset.from_nested({
        "g": {"a": (12, 9), "b": (8, 5)},
        "c": (20, 11),
    })
    return MultiLevelBMTreeFactor(data)

################
#### TESTS #####
################

def test_run_summary():
    factor = small_factor()
    sink = MemorySampleSink()
    mh = MetropolisHastings(factor, RandomWalkKernel(0.3), num_iter = 40, 
                            sink = sink, log_depth = 2)
    summary = mh.run(np.random.default_rng(0))
    
    assert summary.iterations == 40
    assert summary.proposed == 40 * 5
    assert 0 < summary.accepted < summary.proposed
    assert 0 < summary.acceptance_rate < 1
    assert summary.final_log_density == pytest.approx(factor.log_density())
    # root, g and c at every iteration
    assert len(sink.records) == 40 * 3
    assert sink.values("root")[-1] == factor.contents

def test_invalid_states_never_accepted():
    factor = small_factor()
    MetropolisHastings(factor, RandomWalkKernel(2.0), num_iter = 60).run(
        np.random.default_rng(1))
    for f in factor.factors():
        if not f.is_leaf():
            assert f.contents > 0
    assert math.isfinite(factor.log_density())

def test_reproducible():
    first, second = small_factor(), small_factor()
    MetropolisHastings(first, num_iter = 25).run(np.random.default_rng(3))
    MetropolisHastings(second, num_iter = 25).run(np.random.default_rng(3))
    assert [f.contents for f in first.factors()] == \
           [f.contents for f in second.factors()]

def test_starts_from_root():
    factor = small_factor()
    mh = MetropolisHastings(factor.children[0].children[0], num_iter = 1)
    assert mh.factor is factor

def test_invalid_start():
    factor = small_factor()
    factor.contents = -1.0
    with pytest.raises(MetropolisHastingsException):
        MetropolisHastings(factor, num_iter = 5).run(np.random.default_rng(0))

def test_bad_settings():
    with pytest.raises(MetropolisHastingsException):
        RandomWalkKernel(0.0)
    with pytest.raises(MetropolisHastingsException):
        MetropolisHastings(small_factor(), num_iter = -1)

def test_move_undo():
    factor = small_factor()
    move = ContentsMove(factor, 0.5)
    move.execute()
    assert factor.contents == 0.5
    move.undo()
    assert factor.contents == 0.01
    assert move.hastings_ratio() == 0.0
