import math
import numpy as np
import pytest
from MultiLevelPy.BrownianModel import combine, observation
from MultiLevelPy.DivideConquer import DivideConquerMCAlgorithm
from MultiLevelPy.Logger import MemorySampleSink
from MultiLevelPy.Options import *
from MultiLevelPy.Probability import (log_binomial_logit_pr, log_binomial_pr, 
                                      logistic, logit)
from MultiLevelPy.Tree import Datum, LeafNode, MultiLevelDataset
from MultiLevelPy.TreeFactor import *


################
### HELPERS ####
################

def two_leaves() -> MultiLevelDataset:
    return MultiLevelDataset.from_nested({"A": (10, 7), "B": (10, 3)})

def nested() -> MultiLevelDataset:
    return MultiLevelDataset.from_nested({
        "g": {"a": (12, 9), "b": (8, 5)},
        "c": (20, 11),
    })

def by_label(factor : MultiLevelBMTreeFactor) -> dict:
    return {f.node.label : f for f in factor.factors()}

################
#### TESTS #####
################

def test_requires_transform():
    with pytest.raises(ModelConfigurationError):
        MultiLevelBMTreeFactor(two_leaves(), 
                               model_options = MultiLevelModelOptions(
                                   use_transform = False))

def test_default_initialization():
    factor = MultiLevelBMTreeFactor(nested())
    factors = by_label(factor)
    assert factors["root"].contents == DEFAULT_CONTENTS
    assert factors["g"].contents == DEFAULT_CONTENTS
    assert factors["a"].contents == pytest.approx(logit(10 / 14))
    assert factors["c"].contents == pytest.approx(logit(12 / 22))
    assert [f.node.label for f in factor.factors()] == \
           ["root", "g", "a", "b", "c"]

def test_structure_mirrors_tree():
    data = nested()
    factor = MultiLevelBMTreeFactor(data)
    assert factor.parent is None
    assert factor.node == data.root
    for f in factor.factors():
        assert [c.node for c in f.children] == list(data.get_children(f.node))
        for child in f.children:
            assert child.parent is f
            assert child.root() is factor

def test_density_decomposition():
    """
    Two leaves: prior on the root variance, one merge, two emissions.
    """
    prior = ExponentialVariancePrior(1.5)
    factor = MultiLevelBMTreeFactor(two_leaves(), 
                                    model_options = MultiLevelModelOptions(
                                        prior))
    factor.contents = 0.8
    a, b = factor.children
    a.contents, b.contents = 0.4, -0.9
    
    expected = prior.log_density(0.8) \
               + combine([observation([0.4]), observation([-0.9])], 
                         0.8).log_likelihood \
               + log_binomial_pr(10, 7, logistic(0.4)) \
               + log_binomial_pr(10, 3, logistic(-0.9))
    assert factor.log_density() == pytest.approx(expected)

def test_intermediate_merges_are_summed():
    """
    Every internal merge contributes to the Brownian term, not only the 
    root's.
    """
    prior = UniformVariancePrior(5.0)
    factor = MultiLevelBMTreeFactor(nested(), 
                                    model_options = MultiLevelModelOptions(
                                        prior))
    factors = by_label(factor)
    factors["root"].contents = 1.3
    factors["g"].contents = 0.4
    values = {"a": 1.0, "b": 0.2, "c": -0.1}
    for label, value in values.items():
        factors[label].contents = value
    
    inner = combine([observation([1.0]), observation([0.2])], 0.4)
    outer = combine([inner.message, observation([-0.1])], 1.3)
    brownian = inner.log_likelihood + outer.log_likelihood
    emission = log_binomial_pr(12, 9, logistic(1.0)) \
               + log_binomial_pr(8, 5, logistic(0.2)) \
               + log_binomial_pr(20, 11, logistic(-0.1))
    expected = 2 * -math.log(5.0) + brownian + emission
    
    assert factor.log_density() == pytest.approx(expected)
    assert outer.log_likelihood != pytest.approx(brownian)

def test_idempotent_and_same_from_any_factor():
    factor = MultiLevelBMTreeFactor(nested())
    first = factor.log_density()
    assert math.isfinite(first)
    assert factor.log_density() == first
    for f in factor.factors():
        assert f.log_density() == first

@pytest.mark.parametrize("variance", [0.0, -0.5, float("nan")])
def test_invalid_variance_is_negative_infinity(variance):
    factor = MultiLevelBMTreeFactor(nested())
    by_label(factor)["g"].contents = variance
    assert factor.log_density() == -math.inf
    result = factor.evaluate()
    assert not result.is_valid
    assert result.reason is not None
    # the leaf view agrees
    assert by_label(factor)["a"].log_density() == -math.inf

def test_outside_uniform_support():
    factor = MultiLevelBMTreeFactor(
        two_leaves(), 
        model_options = MultiLevelModelOptions(UniformVariancePrior(2.0)))
    factor.contents = 2.0
    assert factor.log_density() == -math.inf
    factor.contents = 1.999
    assert math.isfinite(factor.log_density())

def test_emission_matches_leaf_proposal_binomial():
    """
    Emission and leaf proposal use the same binomial function, so a single 
    leaf tree's density is exactly that function's value.
    """
    data = MultiLevelDataset(LeafNode(("root",), Datum(10, 7)))
    factor = MultiLevelBMTreeFactor(data)
    for value in [-2.0, 0.0, 0.3, 1.7]:
        factor.contents = value
        assert factor.log_density() == log_binomial_logit_pr(10, 7, value)
        assert factor.log_density() == \
               pytest.approx(log_binomial_pr(10, 7, logistic(value)))

def test_saturated_rate_keeps_finite_emission():
    """
    At contents = 40, logistic(contents) rounds to 1.0, yet three failures 
    out of ten stay possible, with log-probability close to -3 * 40.
    """
    data = MultiLevelDataset(LeafNode(("root",), Datum(10, 7)))
    factor = MultiLevelBMTreeFactor(data)
    factor.contents = 40.0
    expected = math.log(math.comb(10, 7)) - 3 * 40.0
    assert factor.log_density() == pytest.approx(expected, rel = 1e-9)
    factor.contents = -40.0
    assert factor.log_density() == \
           pytest.approx(math.log(math.comb(10, 7)) - 7 * 40.0, rel = 1e-9)

def test_init_from_smc():
    data = nested()
    smc = DivideConquerMCAlgorithm(data, DcSmcOptions(population_size = 60))
    smc.sample(np.random.default_rng(5))
    sample = smc.sample_tree(np.random.default_rng(6))
    
    factor = MultiLevelBMTreeFactor(data, init = InitFromSMC(sample))
    for f in factor.factors():
        if f.is_leaf():
            assert f.contents == sample[f.node].value()
        else:
            assert f.contents == sample[f.node].variance
    assert math.isfinite(factor.log_density())

def test_log_samples_depth():
    factor = MultiLevelBMTreeFactor(nested())
    
    sink = MemorySampleSink()
    factor.log_samples(0, sink, 0)
    assert sink.records == []
    
    factor.log_samples(1, sink, 3)
    assert [(r.node, r.name, r.iteration) for r in sink.records] == \
           [("root", "variance", 3)]
    
    sink = MemorySampleSink()
    factor.log_samples(2, sink, 4)
    assert [r.node for r in sink.records] == ["root", "root/g", "root/c"]
    assert sink.values("root/c", "imputed") == \
           [by_label(factor)["c"].contents]
    
    sink = MemorySampleSink()
    factor.log_samples(10, sink, 5)
    assert len(sink.records) == 5

def test_log_density_result_type():
    assert (LogDensity(1.0) + LogDensity(2.0)).value == 3.0
    invalid = LogDensity.invalid("nope")
    assert (LogDensity(1.0) + invalid) is invalid
    assert (invalid + LogDensity(1.0)) is invalid
    assert not invalid.is_valid
