import numpy as np
import pytest
from MultiLevelPy.LeafProposal import *
from MultiLevelPy.Probability import (log_binomial_logit_pr, log_binomial_pr, 
                                      logistic)
from MultiLevelPy.Tree import Datum, LeafNode


################
### HELPERS ####
################

def make_proposal(trials : int = 10, successes : int = 7, 
                  alpha : float = 1.0, beta : float = 1.0):
    datum = Datum(trials, successes)
    return MultiLevelLeafProposal(LeafNode(("root", "a"), datum), datum, 
                                  alpha, beta)

################
#### TESTS #####
################

def test_particle_shape():
    proposal = make_proposal()
    log_weight, particle = proposal.propose(np.random.default_rng(3))
    assert log_weight == 0.0
    assert particle.node == LeafNode(("root", "a"))
    assert particle.variance is None
    assert particle.children == ()
    assert particle.message.dimension == 1
    assert particle.message.variance == 0.0
    assert particle.message.effective_count == 1
    assert not particle.message.degenerate

def test_log_pi_is_the_binomial_at_the_proposed_rate():
    proposal = make_proposal(20, 4)
    rng = np.random.default_rng(11)
    for _ in range(25):
        _, particle = proposal.propose(rng)
        p = logistic(particle.value())
        assert particle.log_pi == pytest.approx(log_binomial_pr(20, 4, p),
                                                rel = 1e-9)
        assert particle.log_pi == \
               log_binomial_logit_pr(20, 4, particle.value())

def test_reproducible():
    proposal = make_proposal()
    first = [proposal.propose(np.random.default_rng(7))[1].value() 
             for _ in range(3)]
    second = [proposal.propose(np.random.default_rng(7))[1].value() 
              for _ in range(3)]
    assert first == second
    
    rng_a, rng_b = np.random.default_rng(5), np.random.default_rng(5)
    draws_a = [proposal.propose(rng_a)[1].value() for _ in range(10)]
    draws_b = [proposal.propose(rng_b)[1].value() for _ in range(10)]
    assert draws_a == draws_b

@pytest.mark.parametrize("trials, successes, alpha, beta", 
                         [(10, 7, 1, 1), (10, 0, 1, 1), (3, 3, 0.5, 0.5), 
                          (40, 12, 2.0, 5.0), (0, 0, 1, 1)])
def test_zero_weight_is_exact_up_to_a_constant(trials, successes, alpha, beta):
    """
    The reported weight is 0 for every particle. That is only valid because 
    target / proposal is the same constant for every p under the conjugate 
    Beta proposal, which this checks on a grid.
    """
    proposal = make_proposal(trials, successes, alpha, beta)
    constant = proposal.log_normalization()
    for p in np.linspace(0.01, 0.99, 33):
        ratio = proposal.log_target_density(p) \
                - proposal.log_proposal_density(p)
        assert ratio == pytest.approx(constant, abs = 1e-9)

def test_mean_matches_beta_posterior():
    proposal = make_proposal(10, 7)
    rng = np.random.default_rng(2024)
    draws = [logistic(proposal.propose(rng)[1].value()) for _ in range(4000)]
    assert np.mean(draws) == pytest.approx(8 / 12, abs = 0.01)

def test_rejects_children():
    proposal = make_proposal()
    _, particle = proposal.propose(np.random.default_rng(0))
    with pytest.raises(ValueError):
        proposal.propose(np.random.default_rng(0), [particle])

def test_str():
    assert str(make_proposal()) == "leafProposal[root/a]"
